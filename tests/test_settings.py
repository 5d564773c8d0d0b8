"""
Tests for layered configuration loading
"""

from nm_static_ip.settings import (
    ENV_PREFIX, AddressPreset, Settings, get_config_paths, get_default_config_content,
    init_config, load_settings
)


def write_user_config(root, text):
    path = root / "home" / ".config" / "nm-static-ip" / "config.toml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


class TestConfigPaths:
    """Test config search order"""

    def test_order(self, isolated_home):
        paths = [str(p) for p in get_config_paths()]
        assert paths[0] == "/etc/nm-static-ip/config.toml"
        assert paths[1].endswith("home/.config/nm-static-ip/config.toml")
        assert paths[-1].endswith("work/nm-static-ip.toml")


class TestLoadSettings:
    """Test merging of files, environment and presets"""

    def test_builtin_defaults(self, isolated_home):
        settings = load_settings()
        assert settings.base_ip == "192.168.250.11"
        assert settings.prefix == 24
        assert settings.dns == ["1.1.1.1", "8.8.8.8"]
        assert settings.scan_max == 200
        assert settings.command_timeout == 30

    def test_user_file(self, isolated_home):
        path = write_user_config(isolated_home, """
[defaults]
base_ip = "10.9.0.20"
prefix = 23
dns = "9.9.9.9, 149.112.112.112"
scan_max = 50
never_default = true
""")
        settings = load_settings()

        assert settings.base_ip == "10.9.0.20"
        assert settings.prefix == 23
        assert settings.dns == ["9.9.9.9", "149.112.112.112"]
        assert settings.scan_max == 50
        assert settings.never_default is True
        assert str(path) in settings.config_sources

    def test_local_file_overrides_user_file(self, isolated_home):
        write_user_config(isolated_home, '[defaults]\nbase_ip = "10.9.0.20"\n')
        (isolated_home / "work" / ".nm-static-ip.toml").write_text('[defaults]\nbase_ip = "10.9.1.20"\n')

        assert load_settings().base_ip == "10.9.1.20"

    def test_invalid_file_ignored(self, isolated_home):
        write_user_config(isolated_home, "[defaults\nbroken")
        assert load_settings().base_ip == "192.168.250.11"

    def test_env_overrides(self, isolated_home, monkeypatch):
        write_user_config(isolated_home, '[defaults]\nbase_ip = "10.9.0.20"\n')
        monkeypatch.setenv(f"{ENV_PREFIX}BASE_IP", "172.16.5.11")
        monkeypatch.setenv(f"{ENV_PREFIX}COMMAND_TIMEOUT", "45")
        monkeypatch.setenv(f"{ENV_PREFIX}DRY_RUN", "yes")
        monkeypatch.setenv(f"{ENV_PREFIX}DNS", "10.0.0.53")

        settings = load_settings()

        assert settings.base_ip == "172.16.5.11"
        assert settings.command_timeout == 45
        assert settings.dry_run is True
        assert settings.dns == ["10.0.0.53"]
        assert f"env:{ENV_PREFIX}BASE_IP" in settings.config_sources

    def test_bad_env_values_ignored(self, isolated_home, monkeypatch):
        monkeypatch.setenv(f"{ENV_PREFIX}SCAN_MAX", "lots")
        monkeypatch.setenv(f"{ENV_PREFIX}DNS", "resolver.local")

        settings = load_settings()

        assert settings.scan_max == 200
        assert settings.dns == ["1.1.1.1", "8.8.8.8"]

    def test_preset_applied(self, isolated_home):
        write_user_config(isolated_home, """
[presets.storage]
interface = "ib0"
address = "10.20.0.15"
prefix = 16
gateway = "10.20.0.1"
dns = ["10.20.0.2"]
description = "Storage fabric"
""")
        settings = load_settings(preset="storage")

        assert settings.interface == "ib0"
        assert settings.address == "10.20.0.15"
        assert settings.prefix == 16
        assert settings.gateway == "10.20.0.1"
        assert settings.dns == ["10.20.0.2"]

    def test_default_preset(self, isolated_home):
        write_user_config(isolated_home, """
default_preset = "lab"

[presets.lab]
interface = "ens27f0"
never_default = true
""")
        settings = load_settings()

        assert settings.default_preset == "lab"
        assert settings.interface == "ens27f0"
        assert settings.never_default is True

    def test_preset_without_target_skipped(self, isolated_home):
        write_user_config(isolated_home, '[presets.empty]\ndescription = "nothing"\n')
        assert load_settings().list_presets() == []

    def test_missing_preset(self, isolated_home):
        settings = load_settings(preset="nope")
        assert settings.interface is None


class TestSettings:
    """Test preset handling on the settings object"""

    def test_apply_preset_keeps_unset_fields(self):
        settings = Settings(presets={"lab": AddressPreset(interface="ens27f0")})

        assert settings.apply_preset("lab")
        assert settings.interface == "ens27f0"
        assert settings.prefix == 24
        assert settings.never_default is False

    def test_apply_unknown_preset(self):
        assert not Settings().apply_preset("lab")

    def test_preset_to_dict(self):
        preset = AddressPreset(interface="ib0", dns=["10.20.0.2"])
        assert preset.to_dict()["dns"] == ["10.20.0.2"]
        assert preset.to_dict()["address"] is None


class TestInitConfig:
    """Test config file creation"""

    def test_creates_once(self, isolated_home):
        path = init_config()

        assert path is not None
        assert path.read_text() == get_default_config_content()
        assert init_config() is None
        assert init_config(force=True) == path

    def test_template_loads(self, isolated_home):
        """Test the generated template is valid and defines the lab preset"""
        init_config()
        settings = load_settings()
        assert "lab" in settings.presets
        assert settings.presets["lab"].never_default is True
