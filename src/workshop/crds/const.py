CRD_GROUP = "workshop.io"
CRD_VERSION = "v1"
CRD_KIND_DESK = "Desk"
CRD_PLURAL_DESK = "desks"
CRD_NAME_DESK = f"{CRD_PLURAL_DESK}.{CRD_GROUP}"

LABEL_DESK = f"{CRD_GROUP}/desk"
LABEL_MANAGED = f"{CRD_GROUP}/managed"
