from .common import *  # noqa
from .catalog import *  # noqa
from .inventory import *  # noqa
from .sales import *  # noqa
from .purchasing import *  # noqa
from .mrp import *  # noqa

# Platform event-bus tables (transactional outbox + webhook subscriptions)
from app.events.outbox import *  # noqa
from app.events.subscriptions import *  # noqa
