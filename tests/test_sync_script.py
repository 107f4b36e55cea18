import os
import stat

import pytest

from dapsync.sync_script import SyncScriptGenerator, template_tokens


def test_bundled_template_renders_every_token(settings):
    out = SyncScriptGenerator(settings).generate()

    text = out.read_text(encoding="utf-8")
    assert out == settings.script_output_path
    assert "{{" not in text
    assert 'SYNC_SELECTION_FILE="/host/data/sync_selection.txt"' in text
    assert 'PLAYLISTS_DIR="/host/data/Playlists"' in text
    assert 'MUSIC_DIRECTORY="/host/music/"' in text
    assert 'AUDIOBOOKS_DESTINATION="/dap/books/"' in text
    assert 'PLAYLIST_DESTINATION="/dap/playlists/"' in text
    assert text.startswith("#!/usr/bin/env bash")


def test_output_is_executable(settings):
    out = SyncScriptGenerator(settings).generate()
    mode = stat.S_IMODE(os.stat(out).st_mode)
    assert mode == 0o755


def test_custom_template_literal_substitution(make_settings, tmp_path):
    template = tmp_path / "tpl.sh"
    template.write_text("sel={{SYNC_SELECTION_FILE}} again={{SYNC_SELECTION_FILE}} keep={{UNKNOWN}}\n", encoding="utf-8")
    settings = make_settings(dap_sync_template=str(template), dap_sync_output=str(tmp_path / "out" / "sync.sh"))

    out = SyncScriptGenerator(settings).generate()

    assert out == tmp_path / "out" / "sync.sh"
    assert out.read_text(encoding="utf-8") == (
        "sel=/host/data/sync_selection.txt again=/host/data/sync_selection.txt keep={{UNKNOWN}}\n"
    )


def test_regenerate_overwrites(make_settings, tmp_path):
    template = tmp_path / "tpl.sh"
    template.write_text("{{MUSIC_DESTINATION}}", encoding="utf-8")
    gen = SyncScriptGenerator(make_settings(dap_sync_template=str(template)))
    gen.generate()
    template.write_text("v2 {{MUSIC_DESTINATION}}", encoding="utf-8")
    assert gen.generate().read_text(encoding="utf-8") == "v2 /dap/music/"


def test_missing_template_raises(make_settings, tmp_path):
    gen = SyncScriptGenerator(make_settings(dap_sync_template=str(tmp_path / "absent.sh")))
    with pytest.raises(FileNotFoundError):
        gen.generate()
    assert not gen.output_path.exists()


def test_explicit_selection_file_used_verbatim(make_settings):
    tokens = template_tokens(make_settings(sync_selection_file="/srv/sel.txt"))
    assert tokens["{{SYNC_SELECTION_FILE}}"] == "/srv/sel.txt"
