# NOTE: This is what registers our operator's functions with kopf so that
#       `kopf.run -m workshop.operator` can work. If you add more handlers
#       to the operator, you must add them here.
# flake8: noqa: F401
from .operator import login
from .operator import on_startup
from .operator import on_cleanup
from .operator import on_namespace_event
from .operator import tracked_desks
