# --------------------------------------------------------------------------------------
# Part of the interTwin Project: https://www.intertwin.eu/
#
# Created by: Matteo Bunino
#
# Credit:
# - Matteo Bunino <matteo.bunino@cern.ch> - CERN
# --------------------------------------------------------------------------------------

from datetime import datetime
from typing import Annotated

import dagger
from dagger import Doc, dag, function, object_type

from .scripts import (
    SSH_DIR,
    SSH_KEY_PATH,
    keyscan_command,
    render_deploy_script,
    ssh_command,
)

SCRIPT_PATH = "/run/deploy/deploy.sh"


@object_type
class RemoteServer:
    """Deploy the app container on a remote host running Docker, over SSH."""

    host: Annotated[str, Doc("Hostname or IP address of the remote server")]
    user: Annotated[str, Doc("SSH user on the remote server")]
    key: Annotated[dagger.Secret, Doc("SSH private key")]
    port: Annotated[int, Doc("SSH port")] = 22
    container_name: Annotated[str, Doc("Name of the app container on the server")] = (
        "my-nest-app"
    )
    host_port: Annotated[int, Doc("Port exposed on the server")] = 3000
    image: Annotated[str, Doc("Base image of the SSH client container")] = "alpine:3"

    @function
    def client(self) -> dagger.Container:
        """Return a throwaway container with an SSH client and the private key."""
        return (
            dag.container()
            .from_(self.image)
            .with_exec(["apk", "add", "--no-cache", "openssh-client"])
            .with_exec(["mkdir", "-p", "-m", "700", SSH_DIR])
            .with_mounted_secret(SSH_KEY_PATH, self.key, mode=0o600)
        )

    @function
    async def run(
        self,
        script: Annotated[dagger.Secret, Doc("Shell script to execute on the server")],
    ) -> str:
        """Run a script on the server in a single SSH session. Returns its stdout."""
        print(f"INFO: opening SSH session to {self.user}@{self.host}:{self.port}")
        return await (
            self.client()
            # Invalidate cache to ensure that the script always runs
            .with_env_variable("CACHE", datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f"))
            .with_exec(["sh", "-c", keyscan_command(self.host, self.port)])
            .with_mounted_secret(SCRIPT_PATH, script)
            .with_exec(ssh_command(self.host, self.user, self.port, SCRIPT_PATH))
            .stdout()
        )

    @function
    async def deploy(
        self,
        image_ref: Annotated[str, Doc("Image to pull and run on the server")],
        registry_addr: Annotated[str, Doc("Registry from which the image is pulled")],
        username: Annotated[str, Doc("Registry username")],
        password: Annotated[dagger.Secret, Doc("Registry password")],
    ) -> str:
        """Replace the app container on the server with a new one from ``image_ref``."""
        registry_addr = registry_addr.rstrip("/")
        print(f"INFO: deploying {image_ref} to {self.host}")
        script = render_deploy_script(
            image_ref=image_ref,
            registry_addr=registry_addr,
            username=username,
            password=await password.plaintext(),
            container_name=self.container_name,
            host_port=self.host_port,
        )
        # The script embeds the password, hence it is passed around as a secret
        secret = dag.set_secret(f"{self.container_name}-deploy-script", script)
        return await self.run(script=secret)
