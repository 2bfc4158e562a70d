"""Client configuration: clusters, credentials and contexts stored on disk."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Protocol, TypeVar, Union

import yaml

logger = logging.getLogger(__name__)

DEFAULT_NAME = "default"
DEFAULT_ENDPOINT = "127.0.0.1:9020"

_T = TypeVar("_T")
PathSource = Union[str, "os.PathLike[str]", Callable[[], Union[str, "os.PathLike[str]"]]]


class ConfigError(Exception):
    """Raised when the configuration cannot be read, validated or changed."""


@dataclass
class KubernetesAuthInfo:
    """Credentials kept in a Kubernetes secret."""

    secret_name: str = ""
    secret_namespace: str = ""


@dataclass
class AuthInfo:
    """Credentials used to talk to a cluster."""

    name: str = ""
    token: str = ""
    kubernetes_auth_info: KubernetesAuthInfo | None = field(
        default_factory=KubernetesAuthInfo
    )


@dataclass
class Cluster:
    """Connection information for a cluster."""

    name: str = ""
    endpoint: str = ""
    tunnel_service_namespace: str = ""
    tunnel_service_name: str = ""
    tunnel_service_port: str = ""


@dataclass
class Context:
    """A named pairing of credentials with a cluster."""

    name: str = ""
    auth_info: str = ""
    cluster: str = ""


@dataclass
class Config:
    """The whole configuration: clusters, credentials and contexts by name."""

    current_context: str = ""
    clusters: dict[str, Cluster] = field(default_factory=dict)
    auth_infos: dict[str, AuthInfo] = field(default_factory=dict)
    contexts: dict[str, Context] = field(default_factory=dict)


def _default_config_file() -> str:
    return os.path.join(os.path.expanduser("~"), ".pxc", "config.yml")


@dataclass
class ConfigFlags:
    """Global options given on the command line."""

    config_file: str = field(default_factory=_default_config_file)
    token: str = ""
    secret_name: str = ""
    secret_namespace: str = ""
    verbosity: int = 0


class _ConfigReaderWriter(Protocol):
    def config_save_cluster(self, c: Cluster) -> None: ...
    def config_delete_cluster(self, name: str) -> None: ...
    def config_load(self) -> Config: ...
    def config_save_auth_info(self, a: AuthInfo) -> None: ...
    def config_save_context(self, c: Context) -> None: ...
    def config_delete_auth_info(self, name: str) -> None: ...
    def config_delete_context(self, name: str) -> None: ...
    def config_use_context(self, name: str) -> None: ...
    def config_get_current_context(self) -> str: ...


def _text(value: Any, what: str) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise ConfigError(f"{what} must be a string")
    return str(value)


def _mapping(value: Any, what: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{what} must be a mapping")
    return value


def _kubernetes_auth_from(data: Any) -> KubernetesAuthInfo:
    raw = _mapping(data, "kubernetes_auth_info")
    return KubernetesAuthInfo(
        secret_name=_text(raw.get("secret_name"), "secret_name"),
        secret_namespace=_text(raw.get("secret_namespace"), "secret_namespace"),
    )


def _auth_info_from(data: Any) -> AuthInfo:
    raw = _mapping(data, "auth_info")
    return AuthInfo(
        name=_text(raw.get("name"), "name"),
        token=_text(raw.get("token"), "token"),
        kubernetes_auth_info=_kubernetes_auth_from(raw.get("kubernetes_auth_info")),
    )


def _cluster_from(data: Any) -> Cluster:
    raw = _mapping(data, "cluster")
    return Cluster(
        **{
            key: _text(raw.get(key), key)
            for key in (
                "name",
                "endpoint",
                "tunnel_service_namespace",
                "tunnel_service_name",
                "tunnel_service_port",
            )
        }
    )


def _context_from(data: Any) -> Context:
    raw = _mapping(data, "context")
    return Context(
        name=_text(raw.get("name"), "name"),
        auth_info=_text(raw.get("auth_info"), "auth_info"),
        cluster=_text(raw.get("cluster"), "cluster"),
    )


def _entries(data: Any, what: str, build: Callable[[Any], _T]) -> dict[str, _T]:
    return {str(key): build(value) for key, value in _mapping(data, what).items()}


def _config_from(data: Any) -> Config:
    raw = _mapping(data, "configuration")
    return Config(
        current_context=_text(raw.get("current_context"), "current_context"),
        clusters=_entries(raw.get("clusters"), "clusters", _cluster_from),
        auth_infos=_entries(raw.get("auth_infos"), "auth_infos", _auth_info_from),
        contexts=_entries(raw.get("contexts"), "contexts", _context_from),
    )


class PxcConfigReaderWriter:
    """Keeps the configuration in a YAML file."""

    def __init__(self, config_file: PathSource) -> None:
        self._config_file = config_file

    def _path(self) -> str:
        source = self._config_file
        value = source() if callable(source) else source
        return os.fspath(value)

    def config_save_cluster(self, c: Cluster) -> None:
        """Add or replace a cluster in the file."""
        if not c.name:
            raise ConfigError("Must supply a name for the cluster")
        config = self._load()
        config.clusters[c.name] = c
        self._save(config)

    def config_delete_cluster(self, name: str) -> None:
        """Remove a cluster from the file."""
        if not name:
            raise ConfigError("Must supply a name for the cluster")
        config = self._load()
        if name not in config.clusters:
            raise ConfigError(f"Cluster {name} was not found in {self._path()}")
        del config.clusters[name]
        self._save(config)

    def config_load(self) -> Config:
        """Read the configuration from the file."""
        return self._load()

    def config_save_auth_info(self, a: AuthInfo) -> None:
        """Add or replace credentials in the file."""
        if not a.name:
            raise ConfigError("Must supply a name for the credential")
        config = self._load()
        config.auth_infos[a.name] = a
        self._save(config)

    def config_save_context(self, c: Context) -> None:
        """Add or replace a context in the file."""
        if not c.name:
            raise ConfigError("Must supply a name for the context")
        config = self._load()
        config.contexts[c.name] = c
        self._save(config)

    def config_delete_auth_info(self, name: str) -> None:
        """Remove credentials from the file."""
        if not name:
            raise ConfigError("Must supply a name for the credential to delete")
        config = self._load()
        if name not in config.auth_infos:
            raise ConfigError(f"Credentials {name} were not found in {self._path()}")
        del config.auth_infos[name]
        self._save(config)

    def config_delete_context(self, name: str) -> None:
        """Remove a context from the file."""
        if not name:
            raise ConfigError("Must supply a name for the context to delete")
        config = self._load()
        if name not in config.contexts:
            raise ConfigError(f"Context {name} was not found in {self._path()}")
        del config.contexts[name]
        self._save(config)

    def config_use_context(self, name: str) -> None:
        """Make the named context the current one."""
        if not name:
            raise ConfigError("Must supply a context name")
        config = self._load()
        if name not in config.contexts:
            raise ConfigError(f"Context {name} was not found in {self._path()}")
        config.current_context = name
        self._save(config)

    def config_get_current_context(self) -> str:
        """Return the name of the current context."""
        config = self._load()
        if not config.current_context:
            raise ConfigError("Current context has not been set")
        return config.current_context

    def _save(self, config: Config) -> None:
        path = self._path()
        if not path:
            raise ConfigError("path is empty")
        try:
            text = yaml.safe_dump(asdict(config), default_flow_style=False)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to create yaml parse: {exc}") from exc
        try:
            Path(path).parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigError(f"Failed to create context config dir: {exc}") from exc
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)

    def _load(self) -> Config:
        path = self._path()
        try:
            os.stat(path)
        except (OSError, ValueError):
            return self._new_default_config()
        try:
            data = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigError(f"Failed to load config file {path}, {exc}") from exc
        if not data:
            return self._new_default_config()
        try:
            config = _config_from(yaml.safe_load(data))
        except (yaml.YAMLError, ConfigError) as exc:
            raise ConfigError(f"Failed to process config file {path}, {exc}") from exc
        self._validate(config, path)
        return config

    @staticmethod
    def _new_default_config() -> Config:
        return Config(
            current_context=DEFAULT_NAME,
            auth_infos={DEFAULT_NAME: AuthInfo(name=DEFAULT_NAME)},
            clusters={
                DEFAULT_NAME: Cluster(name=DEFAULT_NAME, endpoint=DEFAULT_ENDPOINT)
            },
            contexts={
                DEFAULT_NAME: Context(
                    name=DEFAULT_NAME, auth_info=DEFAULT_NAME, cluster=DEFAULT_NAME
                )
            },
        )

    @staticmethod
    def _validate(config: Config, path: str) -> None:
        if not config.current_context:
            raise ConfigError(f"Current context missing from config file {path}")
        context = config.contexts.get(config.current_context)
        if context is None:
            raise ConfigError(
                f"Context {config.current_context} missing from config file {path}"
            )
        if context.auth_info not in config.auth_infos:
            raise ConfigError(
                f"Credentials {context.auth_info} missing from config file {path}"
            )
        if context.cluster not in config.clusters:
            raise ConfigError(
                f"Cluster {context.cluster} missing from config file {path}"
            )


class ConfigManager:
    """Holds the loaded configuration, the global flags and where they are stored."""

    def __init__(
        self,
        flags: ConfigFlags | None = None,
        reader_writer: _ConfigReaderWriter | None = None,
    ) -> None:
        self.config = Config()
        self.flags = flags if flags is not None else ConfigFlags()
        self._rw: _ConfigReaderWriter = (
            reader_writer
            if reader_writer is not None
            else PxcConfigReaderWriter(lambda: self.flags.config_file)
        )
        self._tunnel_endpoint = ""

    def load(self) -> None:
        """Load the configuration and apply the flag overrides."""
        self.config = self.config_load()
        self._override()

    def for_each_context(self, handler: Callable[[str, str], Any]) -> None:
        """Call ``handler(context, cluster)`` with each context made current in turn.

        Errors raised by the handler are logged and do not stop the loop.
        """
        original = cm()
        try:
            for name, context in list(self.config.contexts.items()):
                set_cm(new_config_manager_for_context(name))
                try:
                    handler(name, context.cluster)
                except Exception as exc:  # noqa: BLE001 - reported, loop continues
                    logger.error("Failed to comm with cluster %s: %s", name, exc)
        finally:
            set_cm(original)

    def run_in_named_context(self, context_name: str, handler: Callable[[], _T]) -> _T:
        """Run ``handler`` with the named context made current."""
        original = cm()
        try:
            if context_name not in self.config.contexts:
                raise ConfigError(f"could not find the context '{context_name}'")
            try:
                manager = new_config_manager_for_context(context_name)
            except ConfigError as exc:
                raise ConfigError(
                    f"failed to create manager for the context '{context_name}'"
                ) from exc
            set_cm(manager)
            return handler()
        finally:
            set_cm(original)

    def set_tunnel_endpoint(self, tunnel_endpoint: str) -> None:
        """Set the local endpoint of a tunnel to the cluster."""
        self._tunnel_endpoint = tunnel_endpoint

    def get_endpoint(self) -> str:
        """Return the tunnel endpoint if set, else the current cluster's endpoint."""
        if self._tunnel_endpoint:
            return self._tunnel_endpoint
        cluster = self.get_current_cluster()
        if cluster is None:
            raise ConfigError("Current cluster is not set")
        return cluster.endpoint

    def _current_context(self) -> Context:
        context = self.config.contexts.get(self.config.current_context)
        if context is None:
            raise ConfigError(
                f"could not find the context '{self.config.current_context}'"
            )
        return context

    def get_current_cluster(self) -> Cluster | None:
        """Return the cluster of the current context."""
        return self.config.clusters.get(self._current_context().cluster)

    def get_current_auth_info(self) -> AuthInfo | None:
        """Return the credentials of the current context."""
        return self.config.auth_infos.get(self._current_context().auth_info)

    def _override(self) -> None:
        context = self._current_context()
        if self.config.auth_infos.get(context.auth_info) is None:
            self.config.auth_infos[context.auth_info] = AuthInfo()
        if self.config.clusters.get(context.cluster) is None:
            self.config.clusters[context.cluster] = Cluster()
        auth = self.config.auth_infos[context.auth_info]
        if auth.kubernetes_auth_info is None:
            auth.kubernetes_auth_info = KubernetesAuthInfo()
        if self.flags.token:
            auth.token = self.flags.token
        if self.flags.secret_name:
            auth.kubernetes_auth_info.secret_name = self.flags.secret_name
        if self.flags.secret_namespace:
            auth.kubernetes_auth_info.secret_namespace = self.flags.secret_namespace

    def config_save_cluster(self, c: Cluster) -> None:
        """Store a cluster."""
        self._rw.config_save_cluster(c)

    def config_delete_cluster(self, name: str) -> None:
        """Delete a stored cluster."""
        self._rw.config_delete_cluster(name)

    def config_load(self) -> Config:
        """Read the stored configuration."""
        return self._rw.config_load()

    def config_save_auth_info(self, a: AuthInfo) -> None:
        """Store credentials."""
        self._rw.config_save_auth_info(a)

    def config_save_context(self, c: Context) -> None:
        """Store a context after checking its credentials and cluster exist.

        A context without credentials uses the default ones.
        """
        config = self._rw.config_load()
        if c.auth_info:
            if c.auth_info not in config.auth_infos:
                raise ConfigError(f"Credentials {c.auth_info} do not exist")
        else:
            c.auth_info = DEFAULT_NAME
        if c.cluster not in config.clusters:
            raise ConfigError(f"Cluster {c.cluster} does not exist")
        self._rw.config_save_context(c)

    def config_delete_auth_info(self, name: str) -> None:
        """Delete stored credentials."""
        self._rw.config_delete_auth_info(name)

    def config_delete_context(self, name: str) -> None:
        """Delete a stored context."""
        self._rw.config_delete_context(name)

    def config_use_context(self, name: str) -> None:
        """Make the named context current."""
        self._rw.config_use_context(name)

    def config_get_current_context(self) -> str:
        """Return the name of the current context."""
        return self._rw.config_get_current_context()


_manager: ConfigManager | None = None


def cm() -> ConfigManager:
    """Return the global configuration manager, creating it if needed."""
    global _manager
    if _manager is None:
        _manager = ConfigManager()
    return _manager


def set_cm(c: ConfigManager | None) -> None:
    """Replace the global configuration manager."""
    global _manager
    _manager = c


def new_config_manager_for_context(context: str) -> ConfigManager:
    """Create a manager with the named context made current."""
    flags = ConfigFlags(config_file=cm().flags.config_file)
    manager = ConfigManager(flags)
    manager.load()
    if context not in manager.config.contexts:
        raise ConfigError(f"could not find the context '{context}'")
    manager.config.current_context = context
    return manager