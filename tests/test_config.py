"""Tests for render settings and runtime setup."""

import logging

import pytest


class TestRenderSettings:
    """Tests for the RenderSettings dataclass."""

    def test_defaults(self):
        from bvhtracer.config import RenderSettings

        settings = RenderSettings()
        assert settings.resolution == (1280, 720)
        assert settings.samples == 12
        assert settings.max_bounces == 8
        assert settings.gamma == 2.2
        assert settings.width == 1280
        assert settings.height == 720
        assert abs(settings.aspect_ratio - 16.0 / 9.0) < 1e-12

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"resolution": (0, 10)},
            {"resolution": (10, -1)},
            {"resolution": (10, 10, 10)},
            {"samples": 0},
            {"max_bounces": -1},
            {"gamma": 0.0},
        ],
    )
    def test_invalid_values(self, kwargs):
        from bvhtracer.config import RenderSettings

        with pytest.raises(ValueError):
            RenderSettings(**kwargs)

    def test_zero_bounces_allowed(self):
        from bvhtracer.config import RenderSettings

        assert RenderSettings(max_bounces=0).max_bounces == 0


class TestLoadSettings:
    """Tests for reading settings files."""

    def test_full_file(self, tmp_path):
        from bvhtracer.config import load_settings

        path = tmp_path / "settings.toml"
        path.write_text("resolution = [640, 360]\nsamples = 4\nmax_bounces = 3\ngamma = 2.0\n")

        settings = load_settings(path)
        assert settings.resolution == (640, 360)
        assert settings.samples == 4
        assert settings.max_bounces == 3
        assert settings.gamma == 2.0

    def test_partial_file_keeps_defaults(self, tmp_path):
        from bvhtracer.config import DEFAULT_RESOLUTION, load_settings

        path = tmp_path / "settings.toml"
        path.write_text("samples = 32\n")

        settings = load_settings(str(path))
        assert settings.samples == 32
        assert settings.resolution == DEFAULT_RESOLUTION

    def test_missing_file_gives_defaults(self, tmp_path, caplog):
        from bvhtracer.config import RenderSettings, load_settings

        with caplog.at_level(logging.INFO, logger="bvhtracer.config"):
            settings = load_settings(tmp_path / "absent.toml")
        assert settings == RenderSettings()
        assert "No settings file" in caplog.text

    def test_malformed_toml(self, tmp_path):
        from bvhtracer.config import load_settings

        path = tmp_path / "settings.toml"
        path.write_text("resolution = [640, \n")
        with pytest.raises(ValueError, match="Invalid settings file"):
            load_settings(path)

    def test_invalid_value_in_file(self, tmp_path):
        from bvhtracer.config import load_settings

        path = tmp_path / "settings.toml"
        path.write_text("samples = 0\n")
        with pytest.raises(ValueError, match="samples"):
            load_settings(path)


class TestInitTaichi:
    """Tests for init_taichi argument checking."""

    def test_unknown_arch(self):
        from bvhtracer.config import init_taichi

        with pytest.raises(ValueError, match="Unknown arch"):
            init_taichi(arch="tpu")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
