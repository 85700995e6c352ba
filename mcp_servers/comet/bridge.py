from __future__ import annotations

from .config import CometConfig
from .connection import ChannelFactory, ConnectionManager
from .launcher import BrowserLauncher
from .monitor import TaskMonitor
from .tabs import TabRegistry
from .transport import Transport, select_transport


class CometBridge:
    """Process-wide session object handed to every tool handler.

    Holds exactly one ConnectionManager, so there is one control channel per
    process. Collaborators can be injected for tests.
    """

    def __init__(
        self,
        config: CometConfig | None = None,
        *,
        transport: Transport | None = None,
        launcher: BrowserLauncher | None = None,
        channel_factory: ChannelFactory | None = None,
    ) -> None:
        self.config = config or CometConfig.from_env()
        self.transport = transport or select_transport(self.config)
        self.registry = TabRegistry(self.transport, self.config.home_host)
        self.launcher = launcher or BrowserLauncher(self.config, self.transport)
        self.connection = ConnectionManager(
            self.config,
            self.transport,
            self.registry,
            self.launcher,
            channel_factory=channel_factory,
        )
        self.monitor = TaskMonitor(self.config, self.connection, self.registry)

    async def close(self) -> None:
        await self.connection.disconnect()
