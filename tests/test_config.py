import pytest
import yaml

from pxc.config import (
    AuthInfo,
    Cluster,
    ConfigError,
    ConfigFlags,
    ConfigManager,
    Context,
    PxcConfigReaderWriter,
    cm,
    new_config_manager_for_context,
    set_cm,
)


@pytest.fixture
def config_file(tmp_path):
    return tmp_path / "pxc" / "config.yml"


@pytest.fixture
def rw(config_file):
    return PxcConfigReaderWriter(config_file)


@pytest.fixture
def manager(config_file):
    previous = cm()
    m = ConfigManager(ConfigFlags(config_file=str(config_file)))
    set_cm(m)
    yield m
    set_cm(previous)


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


def test_missing_file_gives_default(rw):
    config = rw.config_load()
    assert config.current_context == "default"
    assert config.clusters["default"].endpoint == "127.0.0.1:9020"
    assert config.contexts["default"] == Context(
        name="default", auth_info="default", cluster="default"
    )


def test_empty_file_gives_default(config_file, rw):
    _write(config_file, "")
    assert rw.config_get_current_context() == "default"


def test_save_cluster_round_trip(rw):
    cluster = Cluster(name="prod", endpoint="10.0.0.1:9020")
    rw.config_save_cluster(cluster)
    loaded = rw.config_load()
    assert loaded.clusters["prod"] == cluster
    assert "default" in loaded.clusters


def test_save_cluster_requires_name(rw):
    with pytest.raises(ConfigError, match="Must supply a name for the cluster"):
        rw.config_save_cluster(Cluster())


def test_delete_cluster(rw):
    rw.config_save_cluster(Cluster(name="prod"))
    rw.config_delete_cluster("prod")
    assert "prod" not in rw.config_load().clusters


def test_delete_missing_cluster(rw):
    with pytest.raises(ConfigError, match="was not found"):
        rw.config_delete_cluster("nothere")


def test_auth_info_save_and_delete(rw):
    rw.config_save_auth_info(AuthInfo(name="admin", token="token"))
    assert rw.config_load().auth_infos["admin"].token == "token"
    rw.config_delete_auth_info("admin")
    assert "admin" not in rw.config_load().auth_infos
    with pytest.raises(ConfigError, match="were not found"):
        rw.config_delete_auth_info("admin")


def test_context_use_and_current(rw):
    rw.config_save_context(Context(name="ctx", auth_info="default", cluster="default"))
    rw.config_use_context("ctx")
    assert rw.config_get_current_context() == "ctx"


def test_use_missing_context(rw):
    with pytest.raises(ConfigError, match="Context nothere was not found"):
        rw.config_use_context("nothere")


def test_delete_context_requires_name(rw):
    with pytest.raises(ConfigError, match="Must supply a name for the context"):
        rw.config_delete_context("")


def test_invalid_yaml(config_file, rw):
    _write(config_file, "current_context: [unclosed")
    with pytest.raises(ConfigError, match="Failed to process config file"):
        rw.config_load()


def test_missing_current_context(config_file, rw):
    _write(config_file, yaml.safe_dump({"clusters": {}}))
    with pytest.raises(ConfigError, match="Current context missing"):
        rw.config_load()


def test_context_with_missing_cluster(config_file, rw):
    doc = {
        "current_context": "ctx",
        "auth_infos": {"a": {"name": "a"}},
        "contexts": {"ctx": {"name": "ctx", "auth_info": "a", "cluster": "gone"}},
    }
    _write(config_file, yaml.safe_dump(doc))
    with pytest.raises(ConfigError, match="Cluster gone missing"):
        rw.config_load()


def test_save_with_empty_path():
    with pytest.raises(ConfigError, match="path is empty"):
        PxcConfigReaderWriter("").config_save_cluster(Cluster(name="prod"))


def test_load_applies_flag_overrides(config_file):
    flags = ConfigFlags(
        config_file=str(config_file),
        token="token",
        secret_name="px-secret",
        secret_namespace="kube-system",
    )
    m = ConfigManager(flags)
    m.load()
    auth = m.get_current_auth_info()
    assert auth.token == "token"
    assert auth.kubernetes_auth_info.secret_name == "px-secret"
    assert auth.kubernetes_auth_info.secret_namespace == "kube-system"


def test_endpoint_and_tunnel(manager):
    manager.load()
    assert manager.get_endpoint() == "127.0.0.1:9020"
    manager.set_tunnel_endpoint("localhost:12345")
    assert manager.get_endpoint() == "localhost:12345"


def test_save_context_defaults_credentials(manager):
    manager.config_save_context(Context(name="ctx", cluster="default"))
    assert manager.config_load().contexts["ctx"].auth_info == "default"


def test_save_context_checks_references(manager):
    with pytest.raises(ConfigError, match="Credentials nobody do not exist"):
        manager.config_save_context(
            Context(name="ctx", auth_info="nobody", cluster="default")
        )
    with pytest.raises(ConfigError, match="Cluster gone does not exist"):
        manager.config_save_context(Context(name="ctx", cluster="gone"))


def test_new_manager_for_context(manager):
    manager.config_save_context(Context(name="other", cluster="default"))
    other = new_config_manager_for_context("other")
    assert other.config.current_context == "other"
    with pytest.raises(ConfigError, match="could not find the context"):
        new_config_manager_for_context("missing")


def test_run_in_named_context_restores(manager):
    manager.config_save_context(Context(name="other", cluster="default"))
    manager.load()
    result = manager.run_in_named_context(
        "other", lambda: cm().config.current_context
    )
    assert result == "other"
    assert cm() is manager
    with pytest.raises(ConfigError, match="could not find the context"):
        manager.run_in_named_context("missing", lambda: None)
    assert cm() is manager


def test_for_each_context(manager):
    manager.config_save_context(Context(name="other", cluster="default"))
    manager.load()
    seen = []

    def handler(name, cluster):
        seen.append((name, cluster, cm().config.current_context))
        if name == "other":
            raise RuntimeError("boom")

    manager.for_each_context(handler)
    assert sorted(seen) == [
        ("default", "default", "default"),
        ("other", "default", "other"),
    ]
    assert cm() is manager


def test_cm_is_a_singleton():
    previous = cm()
    try:
        set_cm(None)
        first = cm()
        assert cm() is first
        assert first is not previous
    finally:
        set_cm(previous)