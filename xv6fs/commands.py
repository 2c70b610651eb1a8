"""User commands over a file-system image: cat, echo, ls, mkdir, rm, ln and grep."""
from __future__ import annotations

import sys
from typing import Callable

from .bufcache import BufferCache
from .disk import MemoryDisk
from .files import FileTable, OpenFile
from .filesystem import FileSystem, FileSystemError, Inode, Stat, namecmp
from .grep import grep_stream
from .journal import Log, LogError
from .layout import DIRENT_SIZE, DIRSIZ, DirEntry, FileType
from .printfmt import format_printf

_BUFSIZE = 512
_ERRORS = (FileSystemError, LogError)
_MUTATING = {"mkdir", "rm", "ln"}


def fmtname(path: str) -> str:
    """Last path element, padded with blanks to DIRSIZ characters."""
    name = path.rsplit("/", 1)[-1]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


class _Source:
    """Adapts a read function to a stream that ends quietly on errors."""

    def __init__(self, read: Callable[[int], bytes]) -> None:
        self._read = read

    def read(self, n: int) -> bytes:
        try:
            return self._read(n)
        except _ERRORS:
            return b""


class Shell:
    """Runs the user commands against one file system."""

    def __init__(self, fs: FileSystem, files=None, stdin=None, stdout=None, stderr=None):
        self.fs = fs
        self.files = files if files is not None else FileTable(fs)
        self.stdin = stdin if stdin is not None else sys.stdin.buffer
        self.stdout = stdout if stdout is not None else sys.stdout.buffer
        self.stderr = stderr if stderr is not None else sys.stderr.buffer

    # Helpers standing in for the system calls.

    def _say(self, stream, fmt: str, *args) -> None:
        stream.write(format_printf(fmt, *args).encode("utf-8", "surrogateescape"))

    def _open(self, path: str) -> OpenFile | None:
        try:
            with self.fs.log.transaction():
                ip = self.fs.namei(path)
                if ip is None:
                    return None
                try:
                    ip.lock()
                    ip.unlock()
                    return self.files.open_inode(ip, True, False)
                except _ERRORS:
                    ip.put()
                    raise
        except _ERRORS:
            return None

    def _stat(self, path: str) -> Stat | None:
        f = self._open(path)
        if f is None:
            return None
        try:
            return self.files.stat(f)
        except _ERRORS:
            return None
        finally:
            self.files.close(f)

    def _reader(self, f: OpenFile) -> Callable[[int], bytes]:
        return lambda n: self.files.read(f, n)

    def _attempt(self, op, *args) -> bool:
        try:
            return op(*args)
        except _ERRORS:
            return False

    def _mkdir(self, path: str) -> bool:
        fs = self.fs
        with fs.log.transaction():
            parent = fs.nameiparent(path)
            if parent is None:
                return False
            dp, name = parent
            dp.lock()
            try:
                found = fs.dirlookup(dp, name)
                if found is not None:
                    found[0].put()
                    return False
                ip = fs.ialloc(FileType.DIR)
                ip.lock()
                try:
                    ip.major = 0
                    ip.minor = 0
                    ip.nlink = 1
                    ip.update()
                    dp.nlink += 1  # for ".."
                    dp.update()
                    fs.dirlink(ip, ".", ip.inum)
                    fs.dirlink(ip, "..", dp.inum)
                    fs.dirlink(dp, name, ip.inum)
                finally:
                    ip.unlock_put()
            finally:
                dp.unlock_put()
        return True

    def _is_dir_empty(self, ip: Inode) -> bool:
        for off in range(2 * DIRENT_SIZE, ip.size, DIRENT_SIZE):
            raw = ip.read(off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise FileSystemError("isdirempty: readi")
            if DirEntry.unpack(raw).inum != 0:
                return False
        return True

    def _unlink(self, path: str) -> bool:
        fs = self.fs
        with fs.log.transaction():
            parent = fs.nameiparent(path)
            if parent is None:
                return False
            dp, name = parent
            dp.lock()
            try:
                if namecmp(name, ".") == 0 or namecmp(name, "..") == 0:
                    return False
                found = fs.dirlookup(dp, name)
                if found is None:
                    return False
                ip, off = found
                ip.lock()
                try:
                    if ip.nlink < 1:
                        raise FileSystemError("unlink: nlink < 1")
                    if ip.type == FileType.DIR and not self._is_dir_empty(ip):
                        return False
                    if dp.write(bytes(DIRENT_SIZE), off) != DIRENT_SIZE:
                        raise FileSystemError("unlink: writei")
                    if ip.type == FileType.DIR:
                        dp.nlink -= 1
                        dp.update()
                    ip.nlink -= 1
                    ip.update()
                finally:
                    ip.unlock_put()
            finally:
                dp.unlock_put()
        return True

    def _link(self, old: str, new: str) -> bool:
        fs = self.fs
        with fs.log.transaction():
            ip = fs.namei(old)
            if ip is None:
                return False
            ip.lock()
            if ip.type == FileType.DIR:
                ip.unlock_put()
                return False
            ip.nlink += 1
            ip.update()
            ip.unlock()

            linked = False
            parent = fs.nameiparent(new)
            if parent is not None:
                dp, name = parent
                dp.lock()
                try:
                    if dp.dev == ip.dev:
                        fs.dirlink(dp, name, ip.inum)
                        linked = True
                except FileSystemError:
                    linked = False
                finally:
                    dp.unlock_put()
            if linked:
                ip.put()
                return True
            ip.lock()
            ip.nlink -= 1
            ip.update()
            ip.unlock_put()
            return False

    # Commands.

    def _cat(self, read: Callable[[int], bytes]) -> bool:
        while True:
            try:
                chunk = read(_BUFSIZE)
            except (*_ERRORS, OSError):
                self._say(self.stdout, "cat: read error\n")
                return False
            if not chunk:
                return True
            self.stdout.write(chunk)

    def cat(self, paths) -> None:
        """Copy each file, or standard input if none, to standard output."""
        paths = list(paths)
        if not paths:
            self._cat(self.stdin.read)
            return
        for path in paths:
            f = self._open(path)
            if f is None:
                self._say(self.stdout, "cat: cannot open %s\n", path)
                return
            try:
                ok = self._cat(self._reader(f))
            finally:
                self.files.close(f)
            if not ok:
                return

    def echo(self, args) -> None:
        args = list(args)
        if args:
            self._say(self.stdout, "%s\n", " ".join(args))

    def _ls_line(self, path: str, st: Stat) -> None:
        self._say(self.stdout, "%s %d %d %d\n", fmtname(path), st.type, st.ino, st.size)

    def _ls_dir(self, path: str, f: OpenFile) -> None:
        if len(path.encode("utf-8", "surrogateescape")) + 1 + DIRSIZ + 1 > _BUFSIZE:
            self._say(self.stdout, "ls: path too long\n")
            return
        while True:
            try:
                raw = self.files.read(f, DIRENT_SIZE)
            except _ERRORS:
                return
            if len(raw) != DIRENT_SIZE:
                return
            de = DirEntry.unpack(raw)
            if de.inum == 0:
                continue
            full = f"{path}/{de.decoded_name()}"
            st = self._stat(full)
            if st is None:
                self._say(self.stdout, "ls: cannot stat %s\n", full)
                continue
            self._ls_line(full, st)

    def _ls(self, path: str) -> None:
        f = self._open(path)
        if f is None:
            self._say(self.stderr, "ls: cannot open %s\n", path)
            return
        try:
            try:
                st = self.files.stat(f)
            except _ERRORS:
                self._say(self.stderr, "ls: cannot stat %s\n", path)
                return
            if st.type == FileType.FILE:
                self._ls_line(path, st)
            elif st.type == FileType.DIR:
                self._ls_dir(path, f)
        finally:
            self.files.close(f)

    def ls(self, paths) -> None:
        """List files and directory contents; the current directory by default."""
        for path in list(paths) or ["."]:
            self._ls(path)

    def mkdir(self, paths) -> None:
        paths = list(paths)
        if not paths:
            self._say(self.stderr, "Usage: mkdir files...\n")
            return
        for path in paths:
            if not self._attempt(self._mkdir, path):
                self._say(self.stderr, "mkdir: %s failed to create\n", path)
                break

    def rm(self, paths) -> None:
        paths = list(paths)
        if not paths:
            self._say(self.stderr, "Usage: rm files...\n")
            return
        for path in paths:
            if not self._attempt(self._unlink, path):
                self._say(self.stderr, "rm: %s failed to delete\n", path)
                break

    def ln(self, old: str, new: str) -> None:
        if not self._attempt(self._link, old, new):
            self._say(self.stderr, "link %s %s: failed\n", old, new)

    def _grep(self, pattern: str, stream) -> None:
        for line in grep_stream(pattern, stream):
            self.stdout.write(line)

    def grep(self, pattern: str, paths) -> None:
        """Print lines matching ``pattern`` from each file, or standard input."""
        paths = list(paths)
        if not paths:
            self._grep(pattern, self.stdin)
            return
        for path in paths:
            f = self._open(path)
            if f is None:
                self._say(self.stdout, "grep: cannot open %s\n", path)
                return
            try:
                self._grep(pattern, _Source(self._reader(f)))
            finally:
                self.files.close(f)


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) < 2:
        print("usage: xv6fs IMAGE COMMAND [ARG ...]", file=sys.stderr)
        return 1
    image, command, *rest = args
    commands = {"cat", "echo", "ls", "mkdir", "rm", "ln", "grep"}
    if command not in commands:
        print(f"xv6fs: unknown command {command}", file=sys.stderr)
        return 1
    try:
        disk = MemoryDisk.from_file(image)
        cache = BufferCache(disk)
        log = Log(cache, disk.dev)
        fs = FileSystem(cache, log, disk.dev)
    except OSError as exc:
        print(f"{exc.filename}: {exc.strerror}", file=sys.stderr)
        return 1
    except (*_ERRORS, ValueError) as exc:
        print(f"xv6fs: {image}: {exc}", file=sys.stderr)
        return 1

    sys.stdout.flush()
    shell = Shell(fs)
    if command == "cat":
        shell.cat(rest)
    elif command == "echo":
        shell.echo(rest)
    elif command == "ls":
        shell.ls(rest)
    elif command == "mkdir":
        shell.mkdir(rest)
    elif command == "rm":
        shell.rm(rest)
    elif command == "ln":
        if len(rest) != 2:
            print("Usage: ln old new", file=sys.stderr)
        else:
            shell.ln(*rest)
    elif command == "grep":
        if not rest:
            print("usage: grep pattern [file ...]", file=sys.stderr)
        else:
            shell.grep(rest[0], rest[1:])
    shell.stdout.flush()

    if command in _MUTATING:
        try:
            disk.save(image)
        except OSError as exc:
            print(f"{exc.filename}: {exc.strerror}", file=sys.stderr)
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())