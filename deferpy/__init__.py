from .cause import Cause, Exit
from .errors import (
    DeferError,
    SetupError,
    CleanupActionError,
    CompositeCleanupError,
    AdapterTaskFailure,
)
from .context import ResourceContext
from .current import (
    current_context,
    active_context,
    defer,
    resource,
    global_context,
    global_cleanup,
    aglobal_cleanup,
)
from .scope import ContextScope, context
from .detach import detach
from .adapters import enter_do, enter_context, aenter_context
from .channel import Channel
from .fiber import Fiber, spawn
from .logger import ConsoleLogger, get_logger, set_logger
from .config import Settings, load_settings
from .interop import (
    open_file,
    temp_file,
    temp_dir,
    chdir,
    lock,
    redirect_stdout,
    redirect_stderr,
    redirect_stdin,
    run,
)
