import io
import logging
import os
import subprocess
import sys

import pytest

from pfs import PfsArchive
from pfs.cli import impl
from pfs.cli.main import compression_level_from_env, configure_logging, main
from pfs.cli.options import Option, parse


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """An empty working directory holding a few source files."""
    src = tmp_path / 'src'
    src.mkdir()
    (src / 'hello.txt').write_bytes(b'Hello, world!\n')
    (src / 'numbers.txt').write_bytes(b'0123456789' * 300)
    (src / 'empty.txt').write_bytes(b'')
    work = tmp_path / 'work'
    work.mkdir()
    monkeypatch.chdir(work)
    return tmp_path


@pytest.fixture
def archive(workdir):
    """An archive holding hello.txt and numbers.txt."""
    path = str(workdir / 'data.pfs')
    with PfsArchive.create_new() as pfs:
        pfs.insert('hello.txt', (workdir / 'src/hello.txt').read_bytes())
        pfs.insert('numbers.txt', (workdir / 'src/numbers.txt').read_bytes())
        pfs.persist(path)
    return path


def entry_names(path):
    with PfsArchive.open(path) as pfs:
        return list(pfs)


# =============================================================================
# Usage and parse errors
# =============================================================================


def test_no_arguments_prints_usage(capsys):
    assert main([]) == 0
    assert capsys.readouterr().out.startswith('Usage: pfs [OPTIONS] [FILE]')


def test_help_wins_over_everything(archive, capsys):
    assert main(['--help', '-l', archive]) == 0
    out = capsys.readouterr().out
    assert '--help' in out
    assert 'hello.txt' not in out


def test_unknown_option(archive, capsys):
    assert main(['-lq', archive]) == 1
    assert capsys.readouterr().err == "Error: unknown option '-q'\n"

    assert main(['--lists', archive]) == 1
    assert capsys.readouterr().err == "Error: unknown option '--lists'\n"


# =============================================================================
# Create
# =============================================================================


def test_create(workdir, capsys):
    target = str(workdir / 'new.pfs')
    assert main(['-c', target]) == 0
    assert capsys.readouterr().out == f"Saved '{target}'\n"
    assert entry_names(target) == []


def test_create_several_stops_at_existing(workdir, archive, capsys):
    first = str(workdir / 'first.pfs')
    last = str(workdir / 'last.pfs')
    assert main(['--create', first, archive, last]) == 1
    captured = capsys.readouterr()
    assert captured.err == f"Error: a file already exists at '{archive}'\n"
    assert os.path.exists(first)
    assert not os.path.exists(last)
    # The existing file is left alone
    assert entry_names(archive) == ['hello.txt', 'numbers.txt']


# =============================================================================
# Open failures and default info
# =============================================================================


def test_missing_archive(workdir, capsys):
    path = str(workdir / 'missing.pfs')
    assert main(['-l', path]) == 1
    assert capsys.readouterr().err == f"Error: no file found at '{path}'\n"


def test_corrupted_archive(workdir, capsys):
    path = workdir / 'bad.pfs'
    path.write_bytes(b'this is not an archive')
    assert main([str(path)]) == 1
    assert capsys.readouterr().err == f"Error: file is not a valid PFS archive: '{path}'\n"


def test_default_info(archive, capsys):
    assert main([archive]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == 'data.pfs'
    assert lines[1] == '--------'
    assert lines[2] == 'File count: 2'
    assert lines[3].startswith('Compression ratio: ')
    assert lines[3].endswith('%')
    assert float(lines[3][len('Compression ratio: ') : -1]) > 50


def test_default_info_empty_archive(workdir, capsys):
    path = str(workdir / 'empty.pfs')
    main(['-c', path])
    capsys.readouterr()
    assert main([path]) == 0
    assert capsys.readouterr().out == 'empty.pfs\n---------\nFile count: 0\nCompression ratio: 0.0%\n'


# =============================================================================
# List
# =============================================================================


def test_list(archive, capsys):
    assert main(['-l', archive]) == 0
    assert capsys.readouterr().out == 'hello.txt\nnumbers.txt\n'


def test_list_sizes(archive, capsys):
    assert main(['-ls', archive]) == 0
    assert capsys.readouterr().out == '        14 hello.txt\n      3000 numbers.txt\n'


def test_list_human(archive, capsys):
    assert main(['--list', '--human', '--sizes', archive]) == 0
    assert capsys.readouterr().out == '    14 B   hello.txt\n   2.9 KiB numbers.txt\n'


# =============================================================================
# Extract and output
# =============================================================================


def test_extract(archive, capsys):
    assert main(['-e', 'hello.txt', 'numbers.txt', archive]) == 0
    assert capsys.readouterr().out == "Extracted 'hello.txt'\nExtracted 'numbers.txt'\n"
    assert open('hello.txt', 'rb').read() == b'Hello, world!\n'
    assert open('numbers.txt', 'rb').read() == b'0123456789' * 300


def test_extract_overwrites(archive):
    with open('hello.txt', 'wb') as f:
        f.write(b'old contents that are longer than the new ones')
    assert main(['-e', 'hello.txt', archive]) == 0
    assert open('hello.txt', 'rb').read() == b'Hello, world!\n'


def test_extract_missing_stops(archive, capsys):
    assert main(['-e', 'nope.txt', '-e', 'hello.txt', archive]) == 1
    captured = capsys.readouterr()
    assert captured.err == f"Error: could not find 'nope.txt' in '{archive}'\n"
    assert os.listdir('.') == []


def test_output_first_name_only():
    stream = io.BytesIO()
    with PfsArchive.create_new() as pfs:
        pfs.insert('a', b'AAA')
        pfs.insert('b', b'BBB')
        name = parse(['-o', 'a', 'b']).first(Option.OUTPUT)
        assert impl.output_file(pfs, name, 'x.pfs', stream=stream) == 0
    assert stream.getvalue() == b'AAA'


def test_output_missing(archive, capsys):
    assert main(['-o', 'nope', archive]) == 1
    assert capsys.readouterr().err == f"Error: could not find 'nope' in '{archive}'\n"


# =============================================================================
# Remove
# =============================================================================


def test_remove(archive, capsys):
    assert main(['-r', 'hello.txt', archive]) == 0
    assert capsys.readouterr().out == f"Removing 'hello.txt'\nSaved '{archive}'\n"
    assert entry_names(archive) == ['numbers.txt']


def test_remove_missing_does_not_save(archive, capsys):
    before = os.stat(archive).st_mtime_ns
    assert main(['-r', 'nope', archive]) == 1
    captured = capsys.readouterr()
    assert captured.err == f"Error: no file 'nope' in '{archive}'\n"
    assert 'Saved' not in captured.out
    assert os.stat(archive).st_mtime_ns == before
    assert entry_names(archive) == ['hello.txt', 'numbers.txt']


def test_remove_partial_failure_saves_earlier_removals(archive, capsys):
    assert main(['-r', 'hello.txt', 'nope', 'numbers.txt', archive]) == 1
    captured = capsys.readouterr()
    assert "Removing 'hello.txt'" in captured.out
    assert f"Saved '{archive}'" in captured.out
    assert "Removing 'numbers.txt'" not in captured.out
    assert entry_names(archive) == ['numbers.txt']


# =============================================================================
# Insert
# =============================================================================


def test_insert(workdir, archive, capsys):
    source = str(workdir / 'src' / 'hello.txt')
    fresh = str(workdir / 'fresh.pfs')
    main(['-c', fresh])
    capsys.readouterr()

    assert main(['-i', source, fresh]) == 0
    assert capsys.readouterr().out == f"Inserting 'hello.txt'\nSaved '{fresh}'\n"
    with PfsArchive.open(fresh) as pfs:
        assert pfs.read('hello.txt') == b'Hello, world!\n'


def test_insert_name_from_backslash_path(workdir):
    fresh = str(workdir / 'fresh.pfs')
    main(['-c', fresh])
    weird = workdir / 'dir\\inner.txt'
    weird.write_bytes(b'x')
    assert main(['-i', str(weird), fresh]) == 0
    assert entry_names(fresh) == ['inner.txt']


def test_insert_second_of_three_fails(workdir, capsys):
    fresh = str(workdir / 'fresh.pfs')
    main(['-c', fresh])
    capsys.readouterr()
    first = str(workdir / 'src' / 'hello.txt')
    missing = str(workdir / 'src' / 'missing.txt')
    third = str(workdir / 'src' / 'numbers.txt')

    assert main(['-i', first, missing, third, fresh]) == 1
    captured = capsys.readouterr()
    assert captured.err == f"Error: no file found at '{missing}'\n"
    assert "Inserting 'numbers.txt'" not in captured.out
    assert f"Saved '{fresh}'" in captured.out
    assert entry_names(fresh) == ['hello.txt']


def test_insert_empty_file_fails(workdir, archive, capsys):
    empty = str(workdir / 'src' / 'empty.txt')
    before = os.stat(archive).st_mtime_ns
    assert main(['-i', empty, archive]) == 1
    assert capsys.readouterr().err == f"Error: read operation failed for '{empty}'\n"
    assert os.stat(archive).st_mtime_ns == before


# =============================================================================
# Write from stdin
# =============================================================================


def test_write_stdin(archive, monkeypatch, capsys):
    monkeypatch.setattr(sys, 'stdin', io.TextIOWrapper(io.BytesIO(b'piped data' * 200)))
    assert main(['-w', 'piped.txt', archive]) == 0
    assert capsys.readouterr().out == f"Inserting 'piped.txt'\nSaved '{archive}'\n"
    with PfsArchive.open(archive) as pfs:
        assert pfs.read('piped.txt') == b'piped data' * 200


def test_write_empty_stdin_is_noop(archive, monkeypatch, capsys):
    monkeypatch.setattr(sys, 'stdin', io.TextIOWrapper(io.BytesIO(b'')))
    before = os.stat(archive).st_mtime_ns
    assert main(['-w', 'piped.txt', archive]) == 0
    assert capsys.readouterr().out == ''
    assert os.stat(archive).st_mtime_ns == before


# =============================================================================
# Mode priority and configuration
# =============================================================================


def test_list_takes_priority_over_mutations(archive, capsys):
    assert main(['-r', 'hello.txt', '-l', archive]) == 0
    assert capsys.readouterr().out == 'hello.txt\nnumbers.txt\n'
    assert entry_names(archive) == ['hello.txt', 'numbers.txt']


def test_extract_takes_priority_over_remove(archive, capsys):
    assert main(['-r', 'numbers.txt', '-e', 'hello.txt', archive]) == 0
    assert os.listdir('.') == ['hello.txt']
    assert entry_names(archive) == ['hello.txt', 'numbers.txt']


def test_compression_level_from_env():
    assert compression_level_from_env({}) == 6
    assert compression_level_from_env({'PFS_COMPRESSION_LEVEL': '0'}) == 0
    with pytest.warns(UserWarning):
        assert compression_level_from_env({'PFS_COMPRESSION_LEVEL': 'fast'}) == 6
    with pytest.warns(UserWarning):
        assert compression_level_from_env({'PFS_COMPRESSION_LEVEL': '11'}) == 6



def test_invalid_log_level_is_ignored():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    with pytest.warns(UserWarning, match='PFS_LOG_LEVEL'):
        configure_logging({'PFS_LOG_LEVEL': 'verbose'})
    assert root.handlers == handlers
    assert root.level == level


# =============================================================================
# End to end through a subprocess
# =============================================================================


def run_pfs(*args, cwd, stdin=None, env=None):
    return subprocess.run(
        [sys.executable, '-m', 'pfs', *args], cwd=cwd, input=stdin, capture_output=True, env=env
    )


def test_end_to_end(tmp_path):
    (tmp_path / 'note.txt').write_bytes(b'some notes\n')
    archive = str(tmp_path / 'e2e.pfs')

    result = run_pfs('-c', archive, cwd=tmp_path)
    assert result.returncode == 0, result.stderr
    assert b'File count: 0' in run_pfs(archive, cwd=tmp_path).stdout

    result = run_pfs('-i', str(tmp_path / 'note.txt'), archive, cwd=tmp_path)
    assert result.returncode == 0, result.stderr
    assert run_pfs('-l', archive, cwd=tmp_path).stdout == b'note.txt\n'

    result = run_pfs('-o', 'note.txt', archive, cwd=tmp_path)
    assert result.stdout == b'some notes\n'

    result = run_pfs('-w', 'from-stdin', archive, cwd=tmp_path, stdin=b'\x00\x01binary')
    assert result.returncode == 0, result.stderr
    assert run_pfs('-o', 'from-stdin', archive, cwd=tmp_path).stdout == b'\x00\x01binary'

    result = run_pfs('-r', 'note.txt', 'from-stdin', archive, cwd=tmp_path)
    assert result.returncode == 0, result.stderr
    assert run_pfs('-l', archive, cwd=tmp_path).stdout == b''

    before = sorted(os.listdir(tmp_path))
    result = run_pfs('-e', 'note.txt', archive, cwd=tmp_path)
    assert result.returncode == 1
    assert b"could not find 'note.txt'" in result.stderr
    assert sorted(os.listdir(tmp_path)) == before


def test_invalid_log_level_does_not_abort(tmp_path):
    env = dict(os.environ, PFS_LOG_LEVEL='verbose')
    result = run_pfs('--help', cwd=tmp_path, env=env)
    assert result.returncode == 0
    assert result.stdout.startswith(b'Usage: pfs')
    assert b'Ignoring invalid PFS_LOG_LEVEL' in result.stderr

    env['PFS_LOG_LEVEL'] = 'debug'
    result = run_pfs('-c', str(tmp_path / 'logged.pfs'), cwd=tmp_path, env=env)
    assert result.returncode == 0
    assert b'DEBUG:pfs.core.archive:' in result.stderr


# =============================================================================
# File names that are not valid UTF-8
# =============================================================================


@pytest.mark.skipif(
    not sys.platform.startswith('linux') or sys.getfilesystemencoding() != 'utf-8',
    reason='needs a filesystem that accepts arbitrary bytes in names',
)
def test_undecodable_file_name(workdir, capsys):
    latin_path = os.path.join(os.fsencode(str(workdir / 'src')), b'caf\xe9.txt')
    with open(latin_path, 'wb') as f:
        f.write(b'latin-1 named\n')
    good = str(workdir / 'src' / 'hello.txt')
    fresh = str(workdir / 'fresh.pfs')
    main(['-c', fresh])
    capsys.readouterr()

    assert main(['-i', good, os.fsdecode(latin_path), fresh]) == 0
    assert capsys.readouterr().out == (
        f"Inserting 'hello.txt'\nInserting 'caf\\xe9.txt'\nSaved '{fresh}'\n"
    )
    name = os.fsdecode(b'caf\xe9.txt')
    assert entry_names(fresh) == ['hello.txt', name]

    assert main(['-l', fresh]) == 0
    assert capsys.readouterr().out == 'hello.txt\ncaf\\xe9.txt\n'

    assert main(['-e', name, fresh]) == 0
    assert capsys.readouterr().out == "Extracted 'caf\\xe9.txt'\n"
    assert os.listdir(b'.') == [b'caf\xe9.txt']
    with open(b'caf\xe9.txt', 'rb') as f:
        assert f.read() == b'latin-1 named\n'

    assert main(['-e', os.fsdecode(b'na\xefve'), fresh]) == 1
    assert capsys.readouterr().err == f"Error: could not find 'na\\xefve' in '{fresh}'\n"


# =============================================================================
# Permissions
# =============================================================================


@pytest.fixture
def umask_022():
    old = os.umask(0o022)
    yield
    os.umask(old)


@pytest.mark.skipif(os.name != 'posix', reason='POSIX permission bits')
def test_saved_archive_mode(workdir, umask_022):
    target = str(workdir / 'new.pfs')
    assert main(['-c', target]) == 0
    assert os.stat(target).st_mode & 0o777 == 0o644

    os.chmod(target, 0o640)
    assert main(['-i', str(workdir / 'src' / 'hello.txt'), target]) == 0
    assert os.stat(target).st_mode & 0o777 == 0o640
    assert entry_names(target) == ['hello.txt']


def test_readonly_archive_reports_error(archive, capsys):
    with PfsArchive.open(archive, readonly=True) as pfs:
        assert impl.remove_entry(pfs, 'hello.txt', archive) == 1
        assert capsys.readouterr().err == 'Error: unknown error code\n'
        assert impl.insert_data(pfs, 'new.txt', b'data') == 1
        assert capsys.readouterr().err == 'Error: unknown error code\n'
        assert impl.save(pfs, archive) == 1
        assert capsys.readouterr().err == 'Error: unknown error code\n'
    assert entry_names(archive) == ['hello.txt', 'numbers.txt']
