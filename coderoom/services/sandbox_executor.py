import codecs
import logging
import os
import shutil
import signal
import subprocess
import threading
from pathlib import Path

from coderoom.errors import SandboxLaunchError
from coderoom.models.execution_model import ExecutionEvent, ExecutionHandle

# Configure logging
logger = logging.getLogger(__name__)

CHUNK_SIZE = 4096


def looks_like_input_prompt(chunk):
    """Best-effort guess that the program is now blocked on stdin.

    Plain output that happens to contain "input" or end with ":" or "? "
    also matches; callers must treat the signal as a hint only.
    """
    return 'input' in chunk or chunk.endswith(':') or chunk.endswith('? ')


class SandboxExecutor:
    """Runs one submission in an isolated runtime process and streams its output."""

    def __init__(self, registry, runtime='docker', docker_binary='docker', memory='512m',
                 cpus='1', pids_limit=256, network='none', stop_timeout=2):
        if runtime not in ('docker', 'local'):
            raise ValueError(f"Unknown sandbox runtime: {runtime}")
        self.registry = registry
        self.runtime = runtime
        self.docker_binary = docker_binary
        self.memory = memory
        self.cpus = cpus
        self.pids_limit = pids_limit
        self.network = network
        self.stop_timeout = stop_timeout

    @classmethod
    def from_config(cls, registry, config):
        return cls(
            registry,
            runtime=config['SANDBOX_RUNTIME'],
            docker_binary=config['DOCKER_BINARY'],
            memory=config['SANDBOX_MEMORY'],
            cpus=config['SANDBOX_CPUS'],
            pids_limit=config['SANDBOX_PIDS_LIMIT'],
            network=config['SANDBOX_NETWORK'],
            stop_timeout=config['SANDBOX_STOP_TIMEOUT'],
        )

    @property
    def uses_containers(self):
        return self.runtime == 'docker'

    def runtime_available(self):
        if not self.uses_containers:
            return True
        return shutil.which(self.docker_binary) is not None

    def start(self, session_id, workspace_path, language_id, source_code, on_event, execution_id=None):
        """Launch a run and return its handle.

        ``on_event`` receives ExecutionEvents from reader threads; it is never
        called again once the handle has been stopped.
        Raises SandboxLaunchError (or UnsupportedLanguage) if nothing was started.
        """
        spec = self.registry.require(language_id)
        name = spec.derive_name(source_code)
        filename = spec.filename_for(name)

        try:
            self._reset_workspace(workspace_path)
            Path(workspace_path, filename).write_text(source_code or '', encoding='utf-8')
        except OSError as e:
            logger.error(f"❌ Could not write {filename} for session {session_id}: {e}")
            raise SandboxLaunchError(f"Could not write source file: {e}") from e

        handle = ExecutionHandle(session_id=session_id, language=language_id)
        if execution_id:
            handle.id = execution_id

        if self.uses_containers:
            handle.container_name = f"code-session-{session_id}-{handle.id[:8]}"
            command = self._docker_command(handle, spec, name, workspace_path)
            cwd = None
        else:
            command = spec.render(name, local=True)
            cwd = workspace_path

        logger.info(f"🚀 Starting {language_id} run {handle.id} for session {session_id}")
        try:
            handle.process = subprocess.Popen(
                command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=cwd,
                # own process group so halt() also reaches compiled children of /bin/sh
                start_new_session=True,
            )
        except OSError as e:
            logger.error(f"❌ Failed to spawn {command[0]} for session {session_id}: {e}")
            raise SandboxLaunchError(f"Failed to start execution environment: {e}") from e

        emit = self._guarded(handle, on_event)
        emit(ExecutionEvent.output(handle.id, f"Running {language_id} code...\r\n"))

        readers = [
            threading.Thread(target=self._pump, args=(handle, handle.process.stdout, emit, True), daemon=True),
            threading.Thread(target=self._pump, args=(handle, handle.process.stderr, emit, False), daemon=True),
        ]
        for reader in readers:
            reader.start()
        threading.Thread(target=self._reap, args=(handle, readers, emit), daemon=True).start()

        return handle

    def send_input(self, handle, text):
        if handle is None or handle.stopped or handle.process is None or handle.process.stdin is None:
            return False

        if not text.endswith('\n'):
            text += '\n'
        try:
            handle.process.stdin.write(text.encode('utf-8'))
            handle.process.stdin.flush()
        except (OSError, ValueError) as e:
            logger.warning(f"⚠️ Could not send input to run {handle.id}: {e}")
            return False

        logger.info(f"Input sent to run {handle.id}")
        return True

    def stop(self, handle):
        """Terminate a run and remove its container. Safe to call repeatedly."""
        if self.halt(handle):
            self.release(handle)

    def halt(self, handle):
        """Silence the run and signal its process group. Never blocks.

        Returns False if the handle was already stopped.
        """
        if handle is None or handle.stopped:
            return False
        handle.stopped = True

        process = handle.process
        if process is not None:
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
            except OSError as e:
                logger.error(f"Error signalling run {handle.id}: {e}")
        return True

    def release(self, handle):
        """Reap a halted run and remove its container. May block on the container engine."""
        process = handle.process
        try:
            if process is not None:
                process.wait(timeout=self.stop_timeout)
                logger.info(f"Run {handle.id} for session {handle.session_id} terminated")
        except subprocess.TimeoutExpired as e:
            logger.error(f"Error terminating run {handle.id}: {e}")
        finally:
            if handle.container_name:
                self._remove_container(handle.container_name)

        if process is not None and process.stdin is not None:
            try:
                process.stdin.close()
            except OSError:
                pass

    def _docker_command(self, handle, spec, name, workspace_path):
        return [
            self.docker_binary, 'run',
            '--name', handle.container_name,
            '-i',
            '--rm',
            '--network', self.network,
            '--memory', self.memory,
            '--cpus', str(self.cpus),
            '--pids-limit', str(self.pids_limit),
            '-v', f"{os.path.abspath(workspace_path)}:/code",
            '-w', '/code',
            spec.image,
            *spec.render(name),
        ]

    def _remove_container(self, container_name):
        try:
            inspect = subprocess.run(
                [self.docker_binary, 'container', 'inspect', container_name],
                capture_output=True,
                timeout=10,
            )
            if inspect.returncode != 0:
                logger.info(f"Container {container_name} does not exist or is already removed")
                return

            subprocess.run(
                [self.docker_binary, 'stop', '-t', str(self.stop_timeout), container_name],
                capture_output=True,
                timeout=self.stop_timeout + 10,
            )
            # --rm normally removes it; force in case the stop raced the exit
            subprocess.run(
                [self.docker_binary, 'rm', '-f', container_name],
                capture_output=True,
                timeout=10,
            )
            logger.info(f"Container {container_name} stopped and removed")
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.error(f"Error cleaning up container {container_name}: {e}")

    @staticmethod
    def _reset_workspace(workspace_path):
        workspace = Path(workspace_path)
        workspace.mkdir(parents=True, exist_ok=True)
        for entry in workspace.iterdir():
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()

    @staticmethod
    def _guarded(handle, on_event):
        def emit(event):
            if handle.stopped:
                return
            try:
                on_event(event)
            except Exception:
                logger.exception(f"Event handler failed for run {handle.id}")
        return emit

    @staticmethod
    def _pump(handle, stream, emit, detect_prompt):
        decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
        try:
            while True:
                data = stream.read1(CHUNK_SIZE)
                if not data:
                    break
                chunk = decoder.decode(data)
                if not chunk:
                    continue
                emit(ExecutionEvent.output(handle.id, chunk))
                if detect_prompt and looks_like_input_prompt(chunk):
                    emit(ExecutionEvent.waiting_for_input(handle.id))
        except (OSError, ValueError) as e:
            logger.debug(f"Stream for run {handle.id} closed: {e}")
        tail = decoder.decode(b'', final=True)
        if tail:
            emit(ExecutionEvent.output(handle.id, tail))

    @staticmethod
    def _reap(handle, readers, emit):
        try:
            exit_code = handle.process.wait()
        except OSError as e:
            logger.error(f"❌ Run {handle.id} failed while waiting: {e}")
            emit(ExecutionEvent.finished(handle.id, f"Error: {e}\r\n", error=True))
            return

        for reader in readers:
            reader.join()
        for stream in (handle.process.stdin, handle.process.stdout, handle.process.stderr):
            try:
                stream.close()
            except OSError:
                pass

        logger.info(f"Run {handle.id} for session {handle.session_id} exited with code {exit_code}")
        emit(ExecutionEvent.finished(
            handle.id,
            f"\r\nProcess exited with code {exit_code}\r\n",
            exit_code=exit_code,
        ))
