from .catalog import *  # noqa
from .storage import *  # noqa
from .stock import *  # noqa
from .orders import *  # noqa
from .audit import *  # noqa

# Platform event-bus tables (transactional outbox + webhook subscriptions)
from coldstore.events.outbox import *  # noqa
from coldstore.events.subscriptions import *  # noqa
