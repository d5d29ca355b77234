# --------------------------------------------------------------------------------------
# Part of the interTwin Project: https://www.intertwin.eu/
#
# Created by: Matteo Bunino
#
# Credit:
# - Matteo Bunino <matteo.bunino@cern.ch> - CERN
# --------------------------------------------------------------------------------------

"""Dagger module for the CI/CD of my-nest-app.

This module provides logic to test and build the NestJS app with pnpm, package it in a
minimal Node.js container image, publish the image to a container registry and run it
on a remote server over SSH.

Three pipelines are provided: ``test``, which only runs the test suite; ``deploy``,
which tests, builds and publishes the container image; and ``deploy-to-server``, which
additionally replaces the app container running on a remote Docker host.

>>> dagger call deploy --source=. --registry-addr=ghcr.io --username=$USER \\
...     --password=env:GHCR_TOKEN
"""

from .main import MyNestApp as MyNestApp

__all__ = ["MyNestApp"]
