import subprocess
from ..cli_logger import logger
from ..errors import NativeBuildFailure

def run_shell_command(command, stream_output=False, env=None, input_data=None, cwd=None):
    """
    Executes a command, with options for streaming output and providing input.

    Args:
        command (list): The command to execute as a list of strings.
        stream_output (bool): If True, streams the output in real-time.
        env (dict, optional): A dictionary of environment variables.
        input_data (str, optional): Data to be passed to the command's stdin.
        cwd (str, optional): The working directory for the command.

    Returns:
        If stream_output is True, returns a tuple (generator of output lines, process).
        If stream_output is False, returns a tuple (stdout, stderr, return_code).
    """
    try:
        if stream_output:
            process = subprocess.Popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                bufsize=1,
                universal_newlines=True,
                env=env,
                cwd=cwd
            )

            def _generator():
                for line in process.stdout:
                    yield line
                process.communicate()
            return _generator(), process

        else:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                env=env,
                input=input_data,
                check=False,
                cwd=cwd
            )
            return result.stdout, result.stderr, result.returncode

    except FileNotFoundError as e:
        logger.error(f"Command not found: {e.filename}")
        if stream_output:
            return iter([]), type('obj', (object,), {'returncode': -1})
        else:
            return "", str(e), -1
    except OSError as e:
        logger.error(f"Could not start {command[0]}: {e}")
        if stream_output:
            return iter([]), type('obj', (object,), {'returncode': -1})
        else:
            return "", str(e), -1


def run_checked(command, env=None, cwd=None, verbose=False):
    """
    Runs one native build step and raises on failure.

    The tool's output is kept verbatim. In verbose mode it is relayed line by
    line while the step runs, otherwise only on failure.

    Raises:
        NativeBuildFailure: If the command cannot be started or exits non-zero.
    """
    logger.debug(f"Running: {' '.join(command)}")
    if verbose:
        lines, process = run_shell_command(command, stream_output=True, env=env, cwd=cwd)
        output = []
        for line in lines:
            output.append(line)
            logger.tool_output(line)
        if process.returncode != 0:
            raise NativeBuildFailure(command, process.returncode, "".join(output))
        return "".join(output)

    stdout, stderr, returncode = run_shell_command(command, env=env, cwd=cwd)
    if returncode != 0:
        raise NativeBuildFailure(command, returncode, (stdout or "") + (stderr or ""))
    return stdout
