# --------------------------------------------------------------------------------------
# Part of the interTwin Project: https://www.intertwin.eu/
#
# Created by: Matteo Bunino
#
# Credit:
# - Matteo Bunino <matteo.bunino@cern.ch> - CERN
# --------------------------------------------------------------------------------------

import re
import shlex
from typing import List

NAME_PATTERN = r"[a-z0-9]([-a-z0-9_.]*[a-z0-9])?"

SSH_DIR = "/root/.ssh"
SSH_KEY_PATH = f"{SSH_DIR}/deploy_key"
KNOWN_HOSTS_PATH = f"{SSH_DIR}/known_hosts"


def validate_name(name: str) -> None:
    """Validates if a given string can be used both as image repository name and as
    Docker container name.

    Args:
        name (str): The name to validate.

    Raises:
        ValueError: If the name does not match the required pattern.
    """
    if not re.fullmatch(NAME_PATTERN, name):
        raise ValueError(
            f"The name '{name}' is invalid for a container image or container. "
            f"Names must match the pattern: '{NAME_PATTERN}'"
        )


def validate_port(port: int) -> None:
    """Validates a TCP port number.

    Raises:
        ValueError: If the port is outside of the 1-65535 range.
    """
    if not 0 < port < 65536:
        raise ValueError(f"Invalid port {port}: it must be in the range 1-65535")


def image_reference(
    registry_addr: str, username: str, app_name: str, tag: str = "latest"
) -> str:
    """Fully qualified image reference under which the app is published.

    Registries like GHCR reject upper case repository names, hence the username is
    always lower-cased.

    >>> image_reference("ghcr.io", "Alice", "my-nest-app")
    'ghcr.io/alice/my-nest-app:latest'
    """
    return f"{registry_addr.rstrip('/')}/{username.lower()}/{app_name}:{tag}"


def render_deploy_script(
    image_ref: str,
    registry_addr: str,
    username: str,
    password: str,
    container_name: str,
    host_port: int,
    container_port: int = 3000,
) -> str:
    """Generate the shell script executed on the remote host to replace the running
    container with a fresh one from ``image_ref``.

    Args:
        image_ref (str): image to pull and run.
        registry_addr (str): registry to log into before pulling.
        username (str): registry username.
        password (str): registry password, in plaintext.
        container_name (str): name of the container on the remote host.
        host_port (int): port exposed on the remote host.
        container_port (int, optional): port the app listens to inside the container.

    Returns:
        str: a single-line script in which each step is chained with ``&&``.
    """
    name = shlex.quote(container_name)
    image = shlex.quote(image_ref)
    steps = [
        (
            f"printf '%s' {shlex.quote(password)} "
            f"| docker login {shlex.quote(registry_addr)} -u {shlex.quote(username)} "
            "--password-stdin"
        ),
        f"docker pull {image}",
        # On the first deployment there is no container to stop
        f"(docker stop {name} || true)",
        f"(docker rm {name} || true)",
        (
            f"docker run -d --name {name} -p {host_port}:{container_port} "
            f"--restart unless-stopped {image}"
        ),
        "docker image prune -f",
    ]
    return " && ".join(steps)


def keyscan_command(host: str, port: int) -> str:
    """Shell command adding the host keys of ``host`` to the known hosts. It never
    fails: an unreachable host is reported by the ssh session itself.
    """
    return (
        f"ssh-keyscan -p {port} {shlex.quote(host)} >> {KNOWN_HOSTS_PATH} 2>/dev/null "
        "|| true"
    )


def ssh_command(host: str, user: str, port: int, script_path: str) -> List[str]:
    """Command opening one ssh session in which the script at ``script_path`` (a path
    in the local container) is fed to the remote shell.
    """
    ssh = [
        "ssh",
        "-i",
        SSH_KEY_PATH,
        "-p",
        str(port),
        "-o",
        "BatchMode=yes",
        "-o",
        "StrictHostKeyChecking=accept-new",
        "-o",
        f"UserKnownHostsFile={KNOWN_HOSTS_PATH}",
        f"{user}@{host}",
        "sh",
        "-s",
    ]
    return ["sh", "-c", f"{shlex.join(ssh)} < {shlex.quote(script_path)}"]
