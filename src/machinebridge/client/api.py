"""Async HTTP client for the remote machine API.

This module provides:
- MachineClient: async HTTP client shared by every machine synchronizer
- Machine listing and state lookup
- Start/stop commands and waiting for a target state
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from machinebridge.core.config import BridgeConfig
from machinebridge.core.types import MachineState

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """API key rejected."""


class NotFoundError(APIError):
    """Machine not found."""


class WaitTimeoutError(APIError, TimeoutError):
    """Machine did not reach the awaited state in time."""


@dataclass
class MachineSnapshot:
    """Machine info from the remote API."""

    id: str
    name: str
    state: MachineState
    os: str = ""
    public_ip_address: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MachineSnapshot:
        """Create from API response dictionary.

        Raises:
            APIError: If the machine reports a state this client does not know.
        """
        try:
            state = MachineState(data["state"])
        except ValueError as e:
            raise APIError(f"Unexpected state {data['state']!r} for machine {data['id']}") from e
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            state=state,
            os=data.get("os") or "",
            public_ip_address=data.get("publicIpAddress") or None,
        )


class MachineClient:
    """Async HTTP client for the remote machine API.

    One client is shared by all synchronizers; it holds no per-machine state.

    Usage:
        async with MachineClient(config) as client:
            machines = await client.list_machines()
            await client.start(machines[0].id)
            await client.wait_for(machines[0].id, MachineState.READY)
    """

    def __init__(self, config: BridgeConfig) -> None:
        """Initialize the machine client.

        Args:
            config: Bridge configuration with API key, URL and timeouts.
        """
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.api_url,
            timeout=config.timeout,
            headers={"X-Api-Key": config.api_key},
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> MachineClient:
        """Context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Context manager exit."""
        await self.close()

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code in (401, 403):
            raise AuthenticationError("Invalid API key", response.status_code)
        if response.status_code == 404:
            raise NotFoundError("Machine not found", 404)
        if response.status_code >= 400:
            raise APIError(_error_detail(response), response.status_code)
        return response

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, wrapping transport failures into APIError."""
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            raise APIError(f"Request to {url} failed: {e}") from e
        return self._handle_response(response)

    async def health_check(self) -> bool:
        """Check if the remote API is reachable with the configured key.

        Returns:
            True if machines can be listed.
        """
        try:
            await self.list_machines()
        except APIError:
            return False
        return True

    # === Machine operations ===

    async def list_machines(self) -> list[MachineSnapshot]:
        """List all machines of the account.

        Returns:
            List of machines.
        """
        response = await self._request("GET", "/machines/getMachines")
        return [MachineSnapshot.from_dict(m) for m in response.json() or []]

    async def show(self, machine_id: str) -> MachineSnapshot:
        """Get a machine by id.

        Args:
            machine_id: Machine id.

        Returns:
            Machine snapshot.

        Raises:
            NotFoundError: If the machine does not exist.
        """
        response = await self._request(
            "GET",
            "/machines/getMachinePublic",
            params={"machineId": machine_id},
        )
        data = response.json()
        if not data:
            raise NotFoundError(f"Machine {machine_id} not found", 404)
        return MachineSnapshot.from_dict(data)

    async def start(self, machine_id: str) -> None:
        """Start a machine.

        Args:
            machine_id: Machine id.
        """
        await self._request("POST", f"/machines/{machine_id}/start")
        logger.debug("Start accepted for machine %s", machine_id)

    async def stop(self, machine_id: str) -> None:
        """Stop a machine.

        Args:
            machine_id: Machine id.
        """
        await self._request("POST", f"/machines/{machine_id}/stop")
        logger.debug("Stop accepted for machine %s", machine_id)

    async def wait_for(
        self,
        machine_id: str,
        state: MachineState,
        timeout: float | None = None,
        poll_interval: float | None = None,
    ) -> MachineSnapshot:
        """Wait until a machine reaches the given state.

        Args:
            machine_id: Machine id.
            state: State to wait for.
            timeout: Seconds before giving up (default: config.wait_timeout).
            poll_interval: Seconds between polls (default: config.wait_poll_interval).

        Returns:
            Snapshot of the machine in the awaited state.

        Raises:
            WaitTimeoutError: If the state is not reached in time.
        """
        timeout = self._config.wait_timeout if timeout is None else timeout
        if poll_interval is None:
            poll_interval = self._config.wait_poll_interval
        deadline = time.monotonic() + timeout

        while True:
            machine = await self.show(machine_id)
            if machine.state == state:
                return machine

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise WaitTimeoutError(
                    f"Machine {machine_id} did not reach {state.value} within "
                    f"{timeout:.0f}s (last state: {machine.state.value})"
                )
            logger.debug(
                "Machine %s is %s, waiting for %s",
                machine_id,
                machine.state.value,
                state.value,
            )
            await asyncio.sleep(min(poll_interval, remaining))


def _error_detail(response: httpx.Response) -> str:
    """Extract an error message from an error response."""
    try:
        data = response.json()
    except ValueError:
        return response.text or "Unknown error"
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            return str(error.get("message", "Unknown error"))
        return str(data.get("message") or error or "Unknown error")
    return "Unknown error"
