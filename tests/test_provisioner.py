import pytest

from tests.helpers import make_desk
from workshop.crds.errors import DeprovisioningError, ProvisioningError
from workshop.operator.desk.provisioner import ResourceProvisioner

TRUSTED = "alice-desk-trusted"
DEFAULT = "alice-desk-default"


def env_of(deployment):
    container = deployment["spec"]["template"]["spec"]["containers"][0]
    return {item["name"]: item["value"] for item in container["env"]}


@pytest.mark.asyncio
async def test_provision_creates_the_desk_graph(cluster, provisioner):
    desk = make_desk("alice", owner="alice", version="v3")

    await provisioner.provision(desk)

    assert set(cluster.namespaces) == {TRUSTED, DEFAULT}
    assert cluster.objects_in(TRUSTED) == [
        ("Deployment", "kubeshell"),
        ("RoleBinding", "alice-view"),
        ("Service", "kubeshell"),
        ("ServiceAccount", "alice"),
    ]
    assert cluster.objects_in(DEFAULT) == [("RoleBinding", "alice-edit")]

    deployment = cluster.get("Deployment", TRUSTED, "kubeshell")
    pod_spec = deployment["spec"]["template"]["spec"]
    assert pod_spec["serviceAccountName"] == "alice"
    assert pod_spec["containers"][0]["image"] == "joelanford/kubeshell:v3"
    assert env_of(deployment) == {
        "KS_USER": "alice",
        "KS_IN_CLUSTER": "true",
        "KS_NAMESPACE": DEFAULT,
        "KS_ENABLE_SUDO": "false",
    }

    binding = cluster.get("RoleBinding", DEFAULT, "alice-edit")
    assert binding["roleRef"]["name"] == "edit"
    assert binding["subjects"] == [
        {"kind": "ServiceAccount", "name": "alice", "namespace": TRUSTED}
    ]


@pytest.mark.asyncio
async def test_every_object_is_owned_by_the_desk(cluster, provisioner):
    await provisioner.provision(make_desk("alice", uid="u-1"))

    owned = list(cluster.namespaces.values()) + list(cluster.objects.values())
    for obj in owned:
        refs = obj["metadata"]["ownerReferences"]
        assert [(r["kind"], r["name"], r["uid"]) for r in refs] == [("Desk", "alice", "u-1")]


@pytest.mark.asyncio
async def test_service_account_named_after_owner(cluster, provisioner):
    await provisioner.provision(make_desk("alice", owner="bob"))

    assert cluster.get("ServiceAccount", TRUSTED, "bob") is not None
    deployment = cluster.get("Deployment", TRUSTED, "kubeshell")
    assert deployment["spec"]["template"]["spec"]["serviceAccountName"] == "bob"
    assert env_of(deployment)["KS_USER"] == "bob"


@pytest.mark.asyncio
async def test_ingress_only_with_domain(cluster, logger):
    provisioner = ResourceProvisioner(
        logger,
        core_v1=cluster,
        rbac_v1=cluster,
        apps_v1=cluster,
        networking_v1=cluster,
        domain="example.com",
    )

    await provisioner.provision(make_desk("alice"))

    ingress = cluster.get("Ingress", TRUSTED, "kubeshell")
    assert ingress["spec"]["rules"][0]["host"] == "alice.example.com"
    assert ingress["spec"]["tls"] == [{"hosts": ["alice.example.com"]}]


@pytest.mark.asyncio
async def test_provision_is_idempotent(cluster, provisioner):
    desk = make_desk("alice")
    await provisioner.provision(desk)
    before = {key: obj["metadata"]["uid"] for key, obj in cluster.objects.items()}

    await provisioner.provision(desk)

    after = {key: obj["metadata"]["uid"] for key, obj in cluster.objects.items()}
    assert after == before
    assert "read:Deployment" in cluster.calls


@pytest.mark.asyncio
async def test_provision_resumes_after_partial_failure(cluster, provisioner):
    desk = make_desk("alice")
    cluster.fail("create:Deployment", 500)

    with pytest.raises(ProvisioningError) as excinfo:
        await provisioner.provision(desk)

    assert excinfo.value.kind == "Deployment"
    assert excinfo.value.name == "kubeshell"
    assert excinfo.value.desk == "alice"
    assert "could not create Deployment 'kubeshell' for desk 'alice'" in str(excinfo.value)
    assert cluster.get("Service", TRUSTED, "kubeshell") is None

    await provisioner.provision(desk)
    assert cluster.get("Service", TRUSTED, "kubeshell") is not None


@pytest.mark.asyncio
async def test_failed_read_of_existing_object(cluster, provisioner):
    desk = make_desk("alice")
    await provisioner.provision(desk)
    cluster.fail("read_namespace", 403)

    with pytest.raises(ProvisioningError, match="Namespace"):
        await provisioner.provision(desk)


@pytest.mark.asyncio
async def test_deprovision_removes_both_namespaces(cluster, provisioner):
    desk = make_desk("alice")
    await provisioner.provision(desk)

    await provisioner.deprovision(desk)

    assert cluster.namespaces == {}
    assert cluster.objects == {}


@pytest.mark.asyncio
async def test_deprovision_tolerates_missing_namespaces(provisioner):
    await provisioner.deprovision(make_desk("alice"))


@pytest.mark.asyncio
async def test_deprovision_attempts_both_and_aggregates(cluster, provisioner):
    desk = make_desk("alice")
    await provisioner.provision(desk)
    cluster.fail("delete_namespace", 500)

    with pytest.raises(DeprovisioningError) as excinfo:
        await provisioner.deprovision(desk)

    assert len(excinfo.value.errors) == 1
    assert set(cluster.namespaces) == {TRUSTED}
