import codecs
import os
import platform
import posixpath
import select
import shlex
import subprocess
import sys
import termios
import tty
from typing import Mapping, Optional, Sequence, Tuple

from paramiko import AutoAddPolicy, SSHClient, SSHException

from .config import BINARY_PREFIX, RuntimeConfig
from .errors import ConnectionFailed, CopyFailed
from .visual import render_command


class ShellExecutor:
    """Runs commands on the target: this machine, or a host reached over ssh.

    Builds always happen locally, see run_local(). In dry-run mode nothing is
    executed and every command is echoed instead.
    """

    def __init__(self, config: RuntimeConfig):
        self.config = config
        self.env_mode = self._detect_env_mode(config)
        self._client: Optional[SSHClient] = None
        self._sftp = None
        self._channel = None

    def __enter__(self) -> "ShellExecutor":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _detect_env_mode(self, config: RuntimeConfig) -> str:
        if config.dry_run:
            return "dry_run"
        if config.is_remote:
            return "ssh"
        return "local"

    def close(self) -> None:
        if self._sftp is not None:
            self._sftp.close()
            self._sftp = None
        if self._client is not None:
            self._client.close()
            self._client = None

    def check_connection(self) -> None:
        """Open the ssh connection and run a no-op, raising ConnectionFailed."""
        if self.env_mode != "ssh":
            return
        try:
            self._connect()
        except (SSHException, OSError) as e:
            raise ConnectionFailed(
                f"cannot connect to {self.config.target_name}: {e}",
                hint=self._connection_hint(),
            ) from e
        code, _, err = self._exec_ssh("true")
        if code != 0:
            raise ConnectionFailed(
                f"cannot run commands on {self.config.target_name}",
                hint=self._connection_hint(),
                output=err,
            )

    def _connection_hint(self) -> str:
        if self.config.vm is not None:
            return (
                f"is the {self.config.vm.value} virtual machine running? "
                f"start it with ssh forwarded to port {self.config.ssh_port}"
            )
        return f"check that 'ssh {self.config.host}' works without a password prompt"

    def query_arch(self) -> str:
        """Machine type of the target, as reported by uname -m."""
        if self.env_mode == "ssh":
            code, out, err = self._exec_ssh("uname -m")
            if code != 0:
                raise ConnectionFailed(
                    f"cannot query the architecture of {self.config.target_name}",
                    output=err,
                )
            return out.strip()
        return platform.machine()

    def run(self, argv: Sequence[str]) -> Tuple[int, str, str]:
        """Run argv on the target and return (returncode, stdout, stderr)."""
        if self.env_mode == "dry_run":
            return self._preview(argv)
        if self.env_mode == "ssh":
            return self._exec_ssh(shlex.join(argv))
        return self._exec_process(list(argv))

    def run_local(
        self, argv: Sequence[str], env: Optional[Mapping[str, str]] = None
    ) -> Tuple[int, str, str]:
        """Run argv on this machine with env added to the process environment."""
        if self.env_mode == "dry_run":
            return self._preview(argv, env)
        full_env = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)
        return self._exec_process(list(argv), full_env)

    def run_foreground(self, argv: Sequence[str]) -> Tuple[int, str, str]:
        """Run argv on the target with output streamed to our stdout.

        Remote commands get a pty fed from our keyboard, so that interrupt()
        and password prompts reach them.
        """
        if self.env_mode == "dry_run":
            return self._preview(argv)
        if self.env_mode == "ssh":
            return self._exec_ssh_foreground(shlex.join(argv))
        try:
            return subprocess.run(list(argv)).returncode, "", ""
        except OSError as e:
            return 127, "", f"cannot execute {argv[0]}: {e}"

    def interrupt(self) -> None:
        """Forward a Ctrl-C to the remote foreground command, if any.

        Local children share our terminal and receive SIGINT themselves.
        """
        channel = self._channel
        if channel is not None and not channel.closed:
            channel.send(b"\x03")

    def binary_path(self, name: str) -> str:
        """Where the built binary called name lives on the target."""
        if not self.config.is_remote:
            return os.path.join(self.config.build_dir, name)
        if self.env_mode == "dry_run":
            return posixpath.join("~", BINARY_PREFIX + name)
        return posixpath.join(self._home(), BINARY_PREFIX + name)

    def copy(self, local_path: str, name: str) -> str:
        """Upload local_path as the target's binary for name, return its path."""
        remote_path = self.binary_path(name)
        if self.env_mode == "dry_run":
            render_command(["sftp", "put", local_path, f"{self.config.host}:{remote_path}"])
            return remote_path
        # upload next to the old binary and rename, a running binary can't be overwritten
        partial = remote_path + ".partial"
        try:
            sftp = self._open_sftp()
            sftp.put(local_path, partial)
            sftp.chmod(partial, 0o755)
            sftp.posix_rename(partial, remote_path)
        except (SSHException, OSError) as e:
            raise CopyFailed(
                f"cannot copy {local_path} to {self.config.target_name}:{remote_path}",
                hint=str(e),
            ) from e
        return remote_path

    def _preview(
        self, argv: Sequence[str], env: Optional[Mapping[str, str]] = None
    ) -> Tuple[int, str, str]:
        render_command(argv, env)
        return 0, "", ""

    def _exec_process(self, cmd_list, env=None) -> Tuple[int, str, str]:
        try:
            proc = subprocess.run(
                cmd_list,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=env,
                text=True,
            )
            return proc.returncode, proc.stdout, proc.stderr
        except OSError as e:
            return 127, "", f"cannot execute {cmd_list[0]}: {e}"

    def _connect(self) -> SSHClient:
        if self._client is not None:
            return self._client
        user, _, hostname = self.config.host.rpartition("@")
        client = SSHClient()
        # no known_hosts: VMs get new host keys every time they are recreated
        client.set_missing_host_key_policy(AutoAddPolicy())
        try:
            client.connect(
                hostname=hostname,
                port=self.config.ssh_port,
                username=user or self.config.ssh_user,
                key_filename=self.config.ssh_key_path,
                timeout=self.config.connect_timeout,
            )
        except BaseException:
            client.close()
            raise
        self._client = client
        return client

    def _open_sftp(self):
        if self._sftp is None:
            self._sftp = self._connect().open_sftp()
        return self._sftp

    def _home(self) -> str:
        return self._open_sftp().normalize(".")

    def _exec_ssh(self, command: str) -> Tuple[int, str, str]:
        try:
            client = self._connect()
            stdin, stdout, stderr = client.exec_command(command)
            out = stdout.read().decode("utf-8", errors="ignore")
            err = stderr.read().decode("utf-8", errors="ignore")
            exit_status = stdout.channel.recv_exit_status()
            return exit_status, out, err
        except (SSHException, OSError) as e:
            return 255, "", f"ssh error: {e}"

    def _exec_ssh_foreground(self, command: str) -> Tuple[int, str, str]:
        try:
            channel = self._connect().get_transport().open_session()
            channel.get_pty()
            channel.exec_command(command)
            self._channel = channel
            stdin_fd = None
            saved_tty = None
            if sys.stdin is not None and sys.stdin.isatty():
                stdin_fd = sys.stdin.fileno()
                saved_tty = termios.tcgetattr(stdin_fd)
                # keystrokes go to the remote pty, which echoes them; Ctrl-C stays a local SIGINT
                tty.setcbreak(stdin_fd)
            try:
                self._pump(channel, stdin_fd)
            finally:
                if saved_tty is not None:
                    termios.tcsetattr(stdin_fd, termios.TCSADRAIN, saved_tty)
            return channel.recv_exit_status(), "", ""
        except (SSHException, OSError) as e:
            return 255, "", f"ssh error: {e}"
        finally:
            self._channel = None

    def _pump(self, channel, stdin_fd: Optional[int]) -> None:
        """Copy remote output to stdout and local input to the channel until EOF.

        Output is written as it arrives so prompts without a newline, such
        as sudo's password prompt, show up.
        """
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            readers = [channel] if stdin_fd is None else [channel, stdin_fd]
            ready, _, _ = select.select(readers, [], [], 0.5)
            if channel in ready:
                data = channel.recv(4096)
                if not data:
                    break
                sys.stdout.write(decoder.decode(data))
                sys.stdout.flush()
            if stdin_fd is not None and stdin_fd in ready:
                data = os.read(stdin_fd, 1024)
                if data:
                    channel.send(data)
                else:
                    stdin_fd = None
