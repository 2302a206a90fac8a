from ._context_manager import (
    ContextManager,
    current_task,
    enter_context,
    exit_context,
    get_context_manager,
    in_context,
)

__all__ = [
    ContextManager.__name__,
    current_task.__name__,
    enter_context.__name__,
    exit_context.__name__,
    get_context_manager.__name__,
    in_context.__name__,
]
