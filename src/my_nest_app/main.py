# --------------------------------------------------------------------------------------
# Part of the interTwin Project: https://www.intertwin.eu/
#
# Created by: Matteo Bunino
#
# Credit:
# - Matteo Bunino <matteo.bunino@cern.ch> - CERN
# --------------------------------------------------------------------------------------

from typing import Annotated

import dagger
from dagger import Doc, Ignore, dag, function, object_type

from .remote import RemoteServer
from .scripts import image_reference, validate_name, validate_port

ignore_list = [
    "node_modules",
    "dist",
    ".dagger",
]


@object_type
class MyNestApp:
    """CI/CD for the NestJS app: test, build, publish and deploy its container image."""

    node_image: str
    runtime_image: str
    app_name: str
    cache_name: str
    container_name: str
    host_port: int

    @classmethod
    def create(
        cls,
        node_image: Annotated[
            str, Doc("Base image of the environment in which the app is built and tested")
        ] = "node:24-slim",
        runtime_image: Annotated[
            str, Doc("Base image of the production container")
        ] = "node:24-alpine",
        app_name: Annotated[
            str, Doc("Name of the container image, without registry and namespace")
        ] = "my-nest-app",
        cache_name: Annotated[
            str, Doc("Name of the cache volume for the pnpm store")
        ] = "pnpm_store",
        container_name: Annotated[
            str, Doc("Name of the app container on the remote server")
        ] = "my-nest-app",
        host_port: Annotated[
            int, Doc("Port on which the remote server exposes the app")
        ] = 3000,
    ):
        validate_name(app_name)
        validate_name(container_name)
        validate_port(host_port)
        return cls(
            node_image=node_image,
            runtime_image=runtime_image,
            app_name=app_name,
            cache_name=cache_name,
            container_name=container_name,
            host_port=host_port,
        )

    @function
    def base(
        self,
        source: Annotated[
            dagger.Directory, Ignore(ignore_list), Doc("location of source directory")
        ],
    ) -> dagger.Container:
        """Node environment with pnpm, the app sources and a persistent pnpm store."""
        return (
            dag.container()
            .from_(self.node_image)
            .with_exec(["corepack", "enable"])
            .with_directory("/src", source, exclude=ignore_list)
            .with_workdir("/src")
            .with_mounted_cache("/pnpm/store", dag.cache_volume(self.cache_name))
            .with_env_variable("PNPM_HOME", "/pnpm")
            .with_env_variable("PATH", "/pnpm:$PATH", expand=True)
        )

    @function
    async def test(
        self,
        source: Annotated[
            dagger.Directory, Ignore(ignore_list), Doc("location of source directory")
        ],
    ) -> str:
        """Install dependencies and run the test suite. Returns the tests output."""
        print("INFO: running tests")
        return await (
            self.base(source)
            .with_exec(["pnpm", "install"])
            .with_exec(["pnpm", "run", "test"])
            .stdout()
        )

    def _compiled(self, source: dagger.Directory) -> dagger.Container:
        return (
            self.base(source)
            .with_exec(["pnpm", "install"])
            .with_exec(["pnpm", "run", "build"])
        )

    @function
    def build(
        self,
        source: Annotated[
            dagger.Directory, Ignore(ignore_list), Doc("location of source directory")
        ],
    ) -> dagger.Directory:
        """Build the app. Returns the output directory (dist)."""
        return self._compiled(source).directory("dist")

    @function
    def node_modules(
        self,
        source: Annotated[
            dagger.Directory, Ignore(ignore_list), Doc("location of source directory")
        ],
    ) -> dagger.Directory:
        """Dependencies resolved while building the app, ready to be shipped with it."""
        return self._compiled(source).directory("node_modules")

    @function
    def image(
        self,
        source: Annotated[
            dagger.Directory, Ignore(ignore_list), Doc("location of source directory")
        ],
        with_dependencies: Annotated[
            bool, Doc("Whether to copy node_modules into the image")
        ] = False,
    ) -> dagger.Container:
        """Production container image of the app."""
        container = (
            dag.container().from_(self.runtime_image).with_directory("/app", self.build(source))
        )
        if with_dependencies:
            container = container.with_directory(
                "/app/node_modules", self.node_modules(source)
            )
        return container.with_workdir("/app").with_entrypoint(["node", "main.js"])

    @function
    def image_ref(
        self,
        registry_addr: Annotated[str, Doc("Registry address, e.g., ghcr.io")],
        username: Annotated[str, Doc("Registry username")],
    ) -> str:
        """Image reference under which the app is published."""
        return image_reference(registry_addr, username, self.app_name)

    @function
    async def publish(
        self,
        container: Annotated[dagger.Container, Doc("Container image to publish")],
        registry_addr: Annotated[str, Doc("Registry address, e.g., ghcr.io")],
        username: Annotated[str, Doc("Registry username")],
        password: Annotated[dagger.Secret, Doc("Registry password or access token")],
    ) -> str:
        """Push container to registry. Returns the published image reference."""
        registry_addr = registry_addr.rstrip("/")
        uri = self.image_ref(registry_addr, username)
        print(f"INFO: publishing Docker image to {uri}")
        return await container.with_registry_auth(registry_addr, username, password).publish(
            uri
        )

    @function
    async def deploy(
        self,
        source: Annotated[
            dagger.Directory, Ignore(ignore_list), Doc("location of source directory")
        ],
        registry_addr: Annotated[str, Doc("Registry address, e.g., ghcr.io")],
        username: Annotated[str, Doc("Registry username")],
        password: Annotated[dagger.Secret, Doc("Registry password or access token")],
    ) -> str:
        """Complete pipeline: test, build and publish the app to a registry."""

        # Test first: a failure here aborts the pipeline
        await self.test(source)

        return await self.publish(
            container=self.image(source),
            registry_addr=registry_addr,
            username=username,
            password=password,
        )

    @function
    def server(
        self,
        ssh_host: Annotated[str, Doc("Hostname or IP address of the remote server")],
        ssh_user: Annotated[str, Doc("SSH user on the remote server")],
        ssh_key: Annotated[dagger.Secret, Doc("SSH private key")],
        ssh_port: Annotated[int, Doc("SSH port")] = 22,
    ) -> RemoteServer:
        """Access the remote server on which the app is deployed."""
        validate_port(ssh_port)
        return RemoteServer(
            host=ssh_host,
            user=ssh_user,
            key=ssh_key,
            port=ssh_port,
            container_name=self.container_name,
            host_port=self.host_port,
        )

    @function
    async def deploy_to_server(
        self,
        source: Annotated[
            dagger.Directory, Ignore(ignore_list), Doc("location of source directory")
        ],
        registry_addr: Annotated[str, Doc("Registry address, e.g., ghcr.io")],
        username: Annotated[str, Doc("Registry username")],
        password: Annotated[dagger.Secret, Doc("Registry password or access token")],
        ssh_host: Annotated[str, Doc("Hostname or IP address of the remote server")],
        ssh_user: Annotated[str, Doc("SSH user on the remote server")],
        ssh_key: Annotated[dagger.Secret, Doc("SSH private key")],
        ssh_port: Annotated[int, Doc("SSH port")] = 22,
    ) -> str:
        """Complete pipeline: test, build, publish and run the app on a remote server."""
        registry_addr = registry_addr.rstrip("/")
        server = self.server(
            ssh_host=ssh_host, ssh_user=ssh_user, ssh_key=ssh_key, ssh_port=ssh_port
        )

        await self.test(source)

        published = await self.publish(
            container=self.image(source, with_dependencies=True),
            registry_addr=registry_addr,
            username=username,
            password=password,
        )
        await server.deploy(
            image_ref=self.image_ref(registry_addr, username),
            registry_addr=registry_addr,
            username=username,
            password=password,
        )
        return f"Deployed {published} to {ssh_user}@{ssh_host}:{ssh_port}"
