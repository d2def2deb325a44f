"""Injected dependencies for switcheroo.

protocols: the interfaces (ssh process, local files, clock, signals, settings)
implementations: what Runtime.production() wires in
"""

from switcheroo.core.protocols import (
    Logger,
    FileSystemService,
    ProcessExecutor,
    ProcessHandle,
    ProcessResult,
    TimeProvider,
    EnvironmentProvider,
    ConfigLoader,
    SignalRegistrar,
)

from switcheroo.core.implementations import (
    ConsoleLogger,
    RealFileSystemService,
    SubprocessExecutor,
    SubprocessHandle,
    SystemTimeProvider,
    SystemEnvironmentProvider,
    YamlConfigLoader,
    SystemSignalRegistrar,
)

__all__ = [
    # Protocols
    "Logger",
    "FileSystemService",
    "ProcessExecutor",
    "ProcessHandle",
    "ProcessResult",
    "TimeProvider",
    "EnvironmentProvider",
    "ConfigLoader",
    "SignalRegistrar",
    # Implementations
    "ConsoleLogger",
    "RealFileSystemService",
    "SubprocessExecutor",
    "SubprocessHandle",
    "SystemTimeProvider",
    "SystemEnvironmentProvider",
    "YamlConfigLoader",
    "SystemSignalRegistrar",
]
