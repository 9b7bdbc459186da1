"""
Named step executors for workflow runs.

``mvpflow run --executor NAME`` and ``build_orchestrator(executor=NAME)``
look executors up here, as does the engine for steps whose ``executor`` is
a string. Plugins contribute executors through the ``mvpflow.executors``
entry point group:

    [project.entry-points."mvpflow.executors"]
    deploy = "mypackage.executors:deploy_step"

The built-in ``noop`` dry-run executor is always present.
"""

import logging
from importlib.metadata import entry_points

from mvpflow.domain.models import StepExecutor
from mvpflow.infrastructure.executors import noop_executor

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "mvpflow.executors"


class ExecutorRegistry:
    """
    Process-wide map from executor name to step callable.

    Plugin entry points are imported the first time a name is resolved or
    listed, so importing mvpflow never imports plugin code. A name
    registered in code shadows a plugin of the same name.
    """

    _executors: dict[str, StepExecutor] = {}
    _loaded: bool = False

    @classmethod
    def _load_entry_points(cls) -> None:
        if cls._loaded:
            return

        for ep in entry_points(group=ENTRY_POINT_GROUP):
            try:
                cls._executors.setdefault(ep.name, ep.load())
            except (ImportError, AttributeError) as e:
                logger.warning("Skipping executor plugin '%s' (%s): %s", ep.name, ep.value, e)

        # present even when mvpflow runs from a source checkout without metadata
        cls._executors.setdefault("noop", noop_executor)
        cls._loaded = True

    @classmethod
    def register(cls, name: str, executor: StepExecutor) -> None:
        """Bind ``name`` to an executor, replacing any plugin or earlier binding."""
        cls._executors[name] = executor
        logger.debug("Executor '%s' registered", name)

    @classmethod
    def get(cls, name: str) -> StepExecutor:
        """
        Resolve a step executor by name.

        This is the ``executor_resolver`` the engine uses for string
        executor references.

        Raises:
            KeyError: If no executor is bound to ``name``; the message lists
                the registered names
        """
        cls._load_entry_points()
        try:
            return cls._executors[name]
        except KeyError:
            known = ", ".join(sorted(cls._executors)) or "none"
            raise KeyError(
                f"Unknown executor '{name}' (registered executors: {known})"
            ) from None

    @classmethod
    def available(cls) -> list[str]:
        """Executor names in registration order, plugins included."""
        cls._load_entry_points()
        return list(cls._executors)

    @classmethod
    def clear(cls) -> None:
        """Forget every executor and rescan plugins on next use. For tests."""
        cls._executors.clear()
        cls._loaded = False
