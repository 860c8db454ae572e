import pytest
import yaml
from pydantic import ValidationError

from kube_scaler.core.config import ScalerConfig, load_config
from kube_scaler.core.exceptions import ConfigurationError
from kube_scaler.core.models import ResourceKind


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("KUBE_SCALER_CONFIG_PATH", raising=False)
    for name in ("API_URL", "DEPLOYMENT", "NAMESPACE", "REPLICA_COUNT", "AUTH_TOKEN", "LOG_LEVEL"):
        monkeypatch.delenv(f"KUBE_SCALER_{name}", raising=False)


def test_defaults():
    config = ScalerConfig()

    assert config.api_url == "https://openshift.default.svc.cluster.local"
    assert config.deployment == "frontend"
    assert config.namespace == "test"
    assert config.replica_count == "0"
    assert config.cluster.resource_kind is ResourceKind.REPLICATION_CONTROLLER
    assert config.cluster.verify_ssl is False
    assert config.validate_fields() == {}


def test_default_retry_policies():
    retry = ScalerConfig().retry

    assert retry.discovery_policy().interval == 10
    assert retry.discovery_policy().timeout == 180
    assert retry.scale_policy().timeout == 60
    assert retry.confirm_policy().max_attempts == 5
    assert retry.confirm_policy().interval == 1


def test_validate_fields_reports_every_problem():
    config = ScalerConfig(api_url="", deployment="", namespace="", replica_count="")

    assert config.validate_fields() == {
        "api_url": "Please set apiURL",
        "deployment": "Please set depCfg",
        "namespace": "Please set nameSpace",
        "replica_count": "Please set replicaCount",
    }


def test_validate_fields_rejects_non_integer_count():
    errors = ScalerConfig(replica_count="three").validate_fields()

    assert errors == {"replica_count": "Please specify an integer for replicaCount"}


def test_validate_fields_rejects_negative_count():
    assert "replica_count" in ScalerConfig(replica_count="-1").validate_fields()


def test_integer_replica_count_is_coerced():
    assert ScalerConfig(replica_count=4).replica_count == "4"


def test_to_request():
    config = ScalerConfig(
        api_url="https://api.test",
        deployment="web",
        namespace="prod",
        replica_count="0x3",
        auth_token="tok",
        cluster={"resource_kind": "Deployment"},
    )

    request = config.to_request()

    assert request.api_endpoint == "https://api.test"
    assert request.deployment_prefix == "web"
    assert request.namespace == "prod"
    assert request.target_replica_count == 3
    assert request.auth_token == "tok"
    assert request.kind is ResourceKind.DEPLOYMENT


def test_to_request_raises_configuration_error():
    with pytest.raises(ConfigurationError) as excinfo:
        ScalerConfig(namespace="").to_request()

    assert excinfo.value.errors == {"namespace": "Please set nameSpace"}


def test_invalid_runner_rejected():
    with pytest.raises(ValidationError):
        ScalerConfig(cluster={"runner": "ssh"})


@pytest.mark.parametrize(
    "retry",
    [
        {"scale_interval": -5},
        {"discovery_interval": -1},
        {"confirm_interval": -0.5},
        {"scale_timeout": 0},
        {"discovery_timeout": -10},
        {"confirm_attempts": 0},
    ],
)
def test_invalid_retry_timing_rejected(retry):
    with pytest.raises(ValidationError):
        ScalerConfig(retry=retry)


def test_zero_interval_allowed():
    assert ScalerConfig(retry={"confirm_interval": 0}).retry.confirm_policy().interval == 0


def test_negative_interval_from_environment_rejected(monkeypatch):
    monkeypatch.setenv("KUBE_SCALER_RETRY__SCALE_INTERVAL", "-5")

    with pytest.raises(ValidationError):
        load_config()


def test_out_of_range_replica_count_is_not_an_integer():
    errors = ScalerConfig(replica_count="99999999999").validate_fields()

    assert errors == {"replica_count": "Please specify an integer for replicaCount"}


def test_largest_replica_count_accepted():
    assert ScalerConfig(replica_count="2147483647").to_request().target_replica_count == 2147483647


def test_log_level_is_normalized():
    assert ScalerConfig(log_level="debug").log_level == "DEBUG"


def test_unknown_log_level_rejected():
    with pytest.raises(ValidationError):
        ScalerConfig(log_level="verbose")


def test_from_yaml_with_overrides(tmp_path):
    path = tmp_path / "scaler.yaml"
    path.write_text(yaml.safe_dump({
        "deployment": "frontend",
        "replica_count": 2,
        "cluster": {"runner": "binary", "binary_path": "/usr/bin/oc"},
        "retry": {"discovery_timeout": 30},
    }))

    config = ScalerConfig.from_yaml(path, namespace="ci", cluster={"resource_kind": "Deployment"})

    assert config.replica_count == "2"
    assert config.namespace == "ci"
    assert config.cluster.runner == "binary"
    assert config.cluster.binary_path == "/usr/bin/oc"
    assert config.cluster.resource_kind is ResourceKind.DEPLOYMENT
    assert config.retry.discovery_timeout == 30
    assert config.retry.scale_timeout == 60


def test_yaml_round_trip(tmp_path):
    path = tmp_path / "out.yaml"
    ScalerConfig(deployment="api", replica_count="5").to_yaml(path)

    loaded = ScalerConfig.from_yaml(path)

    assert loaded.deployment == "api"
    assert loaded.replica_count == "5"


def test_load_config_missing_explicit_path():
    with pytest.raises(FileNotFoundError):
        load_config("does-not-exist.yaml")


def test_load_config_from_env_path(tmp_path, monkeypatch):
    path = tmp_path / "elsewhere.yaml"
    path.write_text("namespace: from-env-path\n")
    monkeypatch.setenv("KUBE_SCALER_CONFIG_PATH", str(path))

    assert load_config().namespace == "from-env-path"


def test_load_config_default_path(tmp_path):
    (tmp_path / "scaler.yaml").write_text("namespace: from-default\n")

    assert load_config().namespace == "from-default"


def test_load_config_from_environment(monkeypatch):
    monkeypatch.setenv("KUBE_SCALER_NAMESPACE", "from-env")
    monkeypatch.setenv("KUBE_SCALER_RETRY__CONFIRM_ATTEMPTS", "7")

    config = load_config(replica_count="1")

    assert config.namespace == "from-env"
    assert config.retry.confirm_attempts == 7
    assert config.replica_count == "1"
