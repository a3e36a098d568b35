"""Cluster node inventory backed by ``kubectl get nodes -o json``."""

from __future__ import annotations

import asyncio
import json as json_mod
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Protocol

from loguru import logger

from attendant.exceptions import DecodeError, TransportError
from attendant.types import Node

DOCKER_DESKTOP_SERVER: Final[str] = "https://kubernetes.docker.internal:6443"


class NodeInventory(Protocol):
    async def list_nodes(self) -> list[Node]: ...


@dataclass(frozen=True, slots=True)
class KubectlTarget:
    """Which cluster kubectl talks to. Empty fields defer to kubectl's own lookup."""

    kubectl: str = "kubectl"
    kubeconfig: str | None = None
    server: str | None = None
    insecure: bool = False

    def flags(self) -> list[str]:
        flags: list[str] = []
        if self.kubeconfig:
            flags += ["--kubeconfig", self.kubeconfig]
        if self.server:
            flags += ["--server", self.server]
        if self.insecure:
            flags.append("--insecure-skip-tls-verify=true")
        return flags


def resolve_target(
    *,
    kubectl: str = "kubectl",
    kubeconfig: str | None = None,
    server: str | None = None,
    environ: Mapping[str, str] | None = None,
    home: Path | None = None,
) -> KubectlTarget:
    """Pick the cluster endpoint, falling back to Docker Desktop's API server."""
    env = os.environ if environ is None else environ
    if kubeconfig or server:
        return KubectlTarget(kubectl=kubectl, kubeconfig=kubeconfig, server=server)
    if env.get("KUBERNETES_SERVICE_HOST") and env.get("KUBERNETES_SERVICE_PORT"):
        return KubectlTarget(kubectl=kubectl)
    if ((home or Path.home()) / ".kube" / "config").is_file():
        return KubectlTarget(kubectl=kubectl)

    logger.bind(component="inventory").warning(
        "No cluster configuration found, falling back to {server}",
        server=DOCKER_DESKTOP_SERVER,
    )
    return KubectlTarget(kubectl=kubectl, server=DOCKER_DESKTOP_SERVER, insecure=True)


def _string_map(value: Any) -> dict[str, str]:
    if not isinstance(value, Mapping):
        return {}
    return {str(k): str(v) for k, v in value.items()}


def parse_nodes(payload: Any) -> list[Node]:
    """Decode a NodeList document, keeping only the fields the attendant uses."""
    if not isinstance(payload, Mapping) or not isinstance(payload.get("items"), list):
        raise DecodeError("Node list must be an object with an items array")

    nodes: list[Node] = []
    for item in payload["items"]:
        metadata = item.get("metadata") if isinstance(item, Mapping) else None
        name = metadata.get("name") if isinstance(metadata, Mapping) else None
        if not isinstance(name, str) or not name:
            raise DecodeError("Node without metadata.name")
        status = item.get("status")
        status = status if isinstance(status, Mapping) else {}
        nodes.append(
            Node(
                name=name,
                labels=_string_map(metadata.get("labels")),
                annotations=_string_map(metadata.get("annotations")),
                capacity=_string_map(status.get("capacity")),
                allocatable=_string_map(status.get("allocatable")),
            )
        )
    return nodes


class KubectlInventory:
    def __init__(self, target: KubectlTarget, timeout: float = 60) -> None:
        self._target = target
        self._timeout = timeout
        self._log = logger.bind(component="inventory")

    async def _run(self, *args: str) -> bytes:
        cmd = [self._target.kubectl, *args, *self._target.flags()]
        self._log.debug("Running {cmd}", cmd=" ".join(cmd))
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TransportError(f"Cannot run {self._target.kubectl}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), self._timeout)
        except (asyncio.CancelledError, TimeoutError) as e:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            if isinstance(e, TimeoutError):
                raise TransportError(f"kubectl timed out after {self._timeout}s") from e
            raise

        if proc.returncode != 0:
            raise TransportError(
                f"kubectl exited with {proc.returncode}: {stderr.decode(errors='replace').strip()}"
            )
        return stdout

    async def list_nodes(self) -> list[Node]:
        output = await self._run("get", "nodes", "-o", "json")
        try:
            payload = json_mod.loads(output)
        except ValueError as e:
            raise DecodeError(f"kubectl returned invalid JSON: {e}") from e
        nodes = parse_nodes(payload)
        self._log.debug("Listed {n} nodes", n=len(nodes))
        return nodes
