"""Collaborator service interface driven by the registry and the workflow engine."""


class Service:
    """
    A collaborating subsystem. The registry starts it with `initialize()`
    and polls `health_check()`; both may suspend.
    """

    name = "service"

    def __init__(self):
        self.initialized = False

    async def initialize(self) -> None:
        self.initialized = True

    async def health_check(self) -> bool:
        return self.initialized
