import json
from pathlib import Path

from conftest import write_file
from main import EXIT_OK, EXIT_UNAVAILABLE, main


def _base_args(settings):
    return [
        "--config", str(settings.config_path),
        "--music-source", settings.music_source,
        "--audiobooks-source", settings.audiobooks_source,
        "--data-dir", settings.data_dir,
    ]


def test_scan_json(settings, capsys):
    write_file(Path(settings.music_source) / "A - B" / "1.mp3", 3)

    assert main(_base_args(settings) + ["scan", "--json"]) == EXIT_OK

    out = json.loads(capsys.readouterr().out)
    assert out["albums_by_artist"]["A"][0]["path"] == "A - B"
    assert out["skipped"] == []


def test_save_and_show_selection(settings, capsys):
    args = _base_args(settings)

    assert main(args + ["save-selection", "--album", "X/Y", "--playlist-id", "5"]) == EXIT_OK
    capsys.readouterr()
    assert main(args + ["show-selection"]) == EXIT_OK

    shown = json.loads(capsys.readouterr().out)
    assert shown["music"]["mode"] == "selected"
    assert shown["audiobooks"]["mode"] == "all"
    assert shown["playlists"]["ids"] == ["5"]


def test_list_playlists_unavailable(settings):
    assert main(_base_args(settings) + ["list-playlists"]) == EXIT_UNAVAILABLE


def test_write_config(tmp_path, capsys):
    target = tmp_path / "cfg.toml"
    assert main(["--config", str(target), "--device-size-gb", "64", "--write-config"]) == EXIT_OK
    assert "device_size_gb = 64" in target.read_text(encoding="utf-8")
