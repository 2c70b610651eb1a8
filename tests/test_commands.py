import io

from xv6fs.bufcache import BufferCache
from xv6fs.commands import Shell, fmtname, main
from xv6fs.disk import MemoryDisk
from xv6fs.filesystem import FileSystem
from xv6fs.journal import Log
from xv6fs.layout import DIRSIZ, FileType
from xv6fs.mkfs import build_image

README = b"hello\nworld\n"


def shell_for(disk, stdin=b""):
    cache = BufferCache(disk)
    log = Log(cache, disk.dev)
    fs = FileSystem(cache, log, disk.dev)
    out, err = io.BytesIO(), io.BytesIO()
    return Shell(fs, stdin=io.BytesIO(stdin), stdout=out, stderr=err), out, err


def make_shell(files=(("README", README),), stdin=b""):
    return shell_for(MemoryDisk(build_image(files)), stdin)


def ls_entries(shell, out, path="/"):
    start = len(out.getvalue())
    shell.ls([path])
    entries = {}
    for line in out.getvalue()[start:].decode().splitlines():
        name, type_, ino, size = line.split()
        entries[name] = (int(type_), int(ino), int(size))
    return entries


def test_fmtname_pads_last_element():
    assert fmtname("a/b/name") == "name".ljust(DIRSIZ)
    assert len(fmtname("x")) == DIRSIZ
    long_name = "n" * (DIRSIZ + 2)
    assert fmtname("/dir/" + long_name) == long_name


def test_cat_prints_file():
    shell, out, _ = make_shell()
    shell.cat(["README"])
    assert out.getvalue() == README


def test_cat_reads_stdin_without_arguments():
    shell, out, _ = make_shell(stdin=b"from stdin\n")
    shell.cat([])
    assert out.getvalue() == b"from stdin\n"


def test_cat_missing_file_stops():
    shell, out, _ = make_shell()
    shell.cat(["missing", "README"])
    assert out.getvalue() == b"cat: cannot open missing\n"


def test_echo_joins_arguments():
    shell, out, _ = make_shell()
    shell.echo(["a", "b"])
    shell.echo([])
    assert out.getvalue() == b"a b\n"


def test_ls_lists_root():
    shell, out, _ = make_shell()
    entries = ls_entries(shell, out)
    assert set(entries) == {".", "..", "README"}
    assert entries["README"][0] == FileType.FILE
    assert entries["README"][2] == len(README)
    assert entries["."][0] == FileType.DIR
    assert entries["."][1] == entries[".."][1]


def test_ls_file_and_default_directory():
    shell, out, _ = make_shell()
    shell.ls(["README"])
    assert out.getvalue().decode().startswith(fmtname("README") + " ")
    assert set(ls_entries(shell, out, ".")) == {".", "..", "README"}


def test_ls_missing_reports_error():
    shell, _, err = make_shell()
    shell.ls(["nope"])
    assert err.getvalue() == b"ls: cannot open nope\n"


def test_mkdir_creates_directory():
    shell, out, err = make_shell()
    shell.mkdir(["docs"])
    assert err.getvalue() == b""
    entries = ls_entries(shell, out)
    assert entries["docs"][0] == FileType.DIR
    inner = ls_entries(shell, out, "docs")
    assert set(inner) == {".", ".."}
    assert inner["."][1] == entries["docs"][1]
    assert inner[".."][1] == entries["."][1]


def test_mkdir_existing_fails():
    shell, _, err = make_shell()
    shell.mkdir(["README"])
    assert err.getvalue() == b"mkdir: README failed to create\n"


def test_mkdir_without_arguments_prints_usage():
    shell, _, err = make_shell()
    shell.mkdir([])
    assert err.getvalue() == b"Usage: mkdir files...\n"


def test_rm_removes_file():
    shell, out, err = make_shell()
    shell.rm(["README"])
    assert err.getvalue() == b""
    assert "README" not in ls_entries(shell, out)
    start = len(out.getvalue())
    shell.cat(["README"])
    assert out.getvalue()[start:] == b"cat: cannot open README\n"


def test_rm_refuses_nonempty_directory():
    shell, out, err = make_shell()
    shell.mkdir(["d"])
    shell.ln("README", "d/x")
    shell.rm(["d"])
    assert err.getvalue() == b"rm: d failed to delete\n"
    assert "d" in ls_entries(shell, out)


def test_rm_empty_directory():
    shell, out, err = make_shell()
    shell.mkdir(["d"])
    shell.rm(["d"])
    assert err.getvalue() == b""
    assert "d" not in ls_entries(shell, out)


def test_ln_shares_content_and_counts_links():
    shell, out, err = make_shell()
    shell.ln("README", "copy")
    assert err.getvalue() == b""
    entries = ls_entries(shell, out)
    assert entries["copy"][1] == entries["README"][1]
    start = len(out.getvalue())
    shell.cat(["copy"])
    assert out.getvalue()[start:] == README
    shell.rm(["README"])
    start = len(out.getvalue())
    shell.cat(["copy"])
    assert out.getvalue()[start:] == README


def test_ln_to_existing_name_fails():
    shell, _, err = make_shell()
    shell.ln("README", "README")
    assert err.getvalue() == b"link README README: failed\n"


def test_grep_file_and_stdin():
    shell, out, _ = make_shell(stdin=b"one\ntwo\n")
    shell.grep("o$", ["README"])
    assert out.getvalue() == b"hello\n"
    start = len(out.getvalue())
    shell.grep("^t", [])
    assert out.getvalue()[start:] == b"two\n"


def test_grep_missing_file():
    shell, out, _ = make_shell()
    shell.grep("x", ["nope"])
    assert out.getvalue() == b"grep: cannot open nope\n"


def test_main_persists_changes(tmp_path):
    img = tmp_path / "fs.img"
    img.write_bytes(build_image([("README", README)]))
    assert main([str(img), "mkdir", "docs"]) == 0
    shell, out, _ = shell_for(MemoryDisk.from_file(img))
    assert ls_entries(shell, out)["docs"][0] == FileType.DIR


def test_main_echo_and_usage(tmp_path, capsys):
    img = tmp_path / "fs.img"
    img.write_bytes(build_image([]))
    assert main([str(img), "echo", "a", "b"]) == 0
    assert capsys.readouterr().out == "a b\n"
    assert main([str(img), "ln", "a"]) == 0
    assert "Usage: ln old new" in capsys.readouterr().err
    assert main([]) == 1