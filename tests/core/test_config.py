"""Tests for mirror configuration."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from dsync.core.config import (
    DEFAULT_INITIAL_SYNC_OPTIONS,
    DEFAULT_RSYNC_OPTIONS,
    MirrorConfig,
    load_config,
    read_max_user_watches,
    strip_trailing_separators,
    verify_directory,
)
from dsync.core.types import ConfigError


class TestStripTrailingSeparators:
    """Tests for strip_trailing_separators()."""

    def test_strips_single_slash(self) -> None:
        """Should remove one trailing slash."""
        assert strip_trailing_separators("/srv/data/") == "/srv/data"

    def test_strips_repeated_slashes(self) -> None:
        """Should remove every trailing slash."""
        assert strip_trailing_separators("/srv/data///") == "/srv/data"

    def test_keeps_root(self) -> None:
        """Should keep a lone root separator."""
        assert strip_trailing_separators("/") == "/"
        assert strip_trailing_separators("//") == "/"

    def test_relative_path(self) -> None:
        """Should strip relative paths too."""
        assert strip_trailing_separators("data/") == "data"

    def test_untouched_path(self) -> None:
        """Should leave paths without trailing slashes alone."""
        assert strip_trailing_separators("/srv/data") == "/srv/data"


class TestMirrorConfig:
    """Tests for MirrorConfig."""

    def test_defaults(self) -> None:
        """Should fill in defaults."""
        config = MirrorConfig(source="/src", destination="/dst")
        assert config.rsync_path == "rsync"
        assert config.rsync_options == DEFAULT_RSYNC_OPTIONS
        assert config.initial_sync_options == DEFAULT_INITIAL_SYNC_OPTIONS
        assert config.initial_sync is True
        assert config.poll_interval == 1.0
        assert config.buffer_size > 0

    def test_options_not_shared(self) -> None:
        """Each config should get its own option lists."""
        first = MirrorConfig(source="/a", destination="/b")
        second = MirrorConfig(source="/a", destination="/b")
        first.rsync_options.append("--checksum")
        assert "--checksum" not in second.rsync_options

    def test_trailing_separators_stripped(self) -> None:
        """Should normalize both directories."""
        config = MirrorConfig(source="/src//", destination="/dst/")
        assert config.source == "/src"
        assert config.destination == "/dst"

    def test_invalid_poll_interval(self) -> None:
        """Should reject a non-positive poll interval."""
        with pytest.raises(ConfigError):
            MirrorConfig(source="/a", destination="/b", poll_interval=0)

    def test_invalid_buffer_size(self) -> None:
        """Should reject a non-positive buffer size."""
        with pytest.raises(ConfigError):
            MirrorConfig(source="/a", destination="/b", buffer_size=-1)

    def test_from_dict(self) -> None:
        """Should build from a dictionary."""
        config = MirrorConfig.from_dict(
            {"source": "/a/", "destination": "/b", "rsync_path": "/usr/local/bin/rsync"}
        )
        assert config.source == "/a"
        assert config.rsync_path == "/usr/local/bin/rsync"

    def test_from_dict_unknown_key(self) -> None:
        """Should reject unknown keys."""
        with pytest.raises(ConfigError, match="bogus"):
            MirrorConfig.from_dict({"source": "/a", "destination": "/b", "bogus": 1})

    def test_from_dict_missing_directories(self) -> None:
        """Should require source and destination."""
        with pytest.raises(ConfigError):
            MirrorConfig.from_dict({"source": "/a"})

    def test_path_objects_accepted(self) -> None:
        """Directories may be given as Path objects."""
        config = MirrorConfig(source=Path("/src/"), destination=Path("/dst"))
        assert config.source == "/src"
        assert config.destination == "/dst"

    def test_options_string_rejected(self) -> None:
        """A bare string is not split into single-character options."""
        with pytest.raises(ConfigError, match="rsync_options: expected a list of strings"):
            MirrorConfig.from_dict({"source": "/a", "destination": "/b", "rsync_options": "-a"})

    def test_options_non_string_item_rejected(self) -> None:
        """Every option must be a string."""
        with pytest.raises(ConfigError, match="initial_sync_options"):
            MirrorConfig.from_dict(
                {"source": "/a", "destination": "/b", "initial_sync_options": ["-a", 3]}
            )

    def test_poll_interval_string_rejected(self) -> None:
        """A non-numeric poll interval raises ConfigError, not TypeError."""
        with pytest.raises(ConfigError, match="poll_interval: expected a number"):
            MirrorConfig.from_dict({"source": "/a", "destination": "/b", "poll_interval": "fast"})

    def test_initial_sync_string_rejected(self) -> None:
        """initial_sync must be a JSON boolean."""
        with pytest.raises(ConfigError, match="initial_sync: expected true or false"):
            MirrorConfig.from_dict({"source": "/a", "destination": "/b", "initial_sync": "yes"})

    def test_buffer_size_bool_rejected(self) -> None:
        """A boolean is not a buffer size."""
        with pytest.raises(ConfigError, match="buffer_size: expected an integer"):
            MirrorConfig(source="/a", destination="/b", buffer_size=True)

    def test_rsync_path_must_be_string(self) -> None:
        """A non-string rsync path is refused."""
        with pytest.raises(ConfigError, match="rsync_path"):
            MirrorConfig.from_dict({"source": "/a", "destination": "/b", "rsync_path": ["rsync"]})

    def test_integer_poll_interval_accepted(self) -> None:
        """Whole-second poll intervals from JSON are fine."""
        config = MirrorConfig.from_dict({"source": "/a", "destination": "/b", "poll_interval": 2})
        assert config.poll_interval == 2

    def test_validate(self, source: Path, destination: Path) -> None:
        """Should accept existing directories."""
        MirrorConfig(source=str(source), destination=str(destination)).validate()

    def test_validate_missing_destination(self, source: Path, tmp_path: Path) -> None:
        """Should reject a missing destination."""
        config = MirrorConfig(source=str(source), destination=str(tmp_path / "missing"))
        with pytest.raises(ConfigError, match="No such directory"):
            config.validate()


class TestVerifyDirectory:
    """Tests for verify_directory()."""

    def test_directory(self, tmp_path: Path) -> None:
        """Should accept a directory."""
        verify_directory(str(tmp_path))

    def test_missing(self, tmp_path: Path) -> None:
        """Should reject a missing path."""
        with pytest.raises(ConfigError, match="No such directory"):
            verify_directory(str(tmp_path / "nope"))

    def test_regular_file(self, tmp_path: Path) -> None:
        """Should reject a regular file."""
        path = tmp_path / "file.txt"
        path.write_text("x")
        with pytest.raises(ConfigError, match="is not a directory"):
            verify_directory(str(path))


class TestLoadConfig:
    """Tests for load_config()."""

    def test_load(self, tmp_path: Path) -> None:
        """Should load a JSON object."""
        path = tmp_path / "dsync.json"
        path.write_text(json.dumps({"rsync_path": "/opt/rsync", "initial_sync": False}))
        assert load_config(path) == {"rsync_path": "/opt/rsync", "initial_sync": False}

    def test_invalid_json(self, tmp_path: Path) -> None:
        """Should report unparseable files."""
        path = tmp_path / "dsync.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError, match="Cannot read config file"):
            load_config(path)

    def test_not_an_object(self, tmp_path: Path) -> None:
        """Should require a JSON object."""
        path = tmp_path / "dsync.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigError, match="JSON object"):
            load_config(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        """Should report missing files."""
        with pytest.raises(ConfigError):
            load_config(tmp_path / "missing.json")


class TestReadMaxUserWatches:
    """Tests for read_max_user_watches()."""

    def test_reads_value(self, tmp_path: Path) -> None:
        """Should parse the integer value."""
        path = tmp_path / "max_user_watches"
        path.write_text("8192\n")
        assert read_max_user_watches(str(path)) == 8192

    def test_unreadable(self, tmp_path: Path) -> None:
        """Should fail when the file is missing."""
        with pytest.raises(ConfigError, match="max_user_watches"):
            read_max_user_watches(str(tmp_path / "missing"))

    def test_garbage(self, tmp_path: Path) -> None:
        """Should fail on non-numeric content."""
        path = tmp_path / "max_user_watches"
        path.write_text("lots\n")
        with pytest.raises(ConfigError, match="Unparseable"):
            read_max_user_watches(str(path))

    def test_zero(self, tmp_path: Path) -> None:
        """Should reject a zero limit."""
        path = tmp_path / "max_user_watches"
        path.write_text("0\n")
        with pytest.raises(ConfigError):
            read_max_user_watches(str(path))
