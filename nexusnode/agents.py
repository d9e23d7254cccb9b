"""AI agents run as containers, with their registry kept in a JSON file."""

from __future__ import annotations

import json
import logging
import os
import socket
import subprocess
import threading
import time
import urllib.error
import urllib.request
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

logger = logging.getLogger("nexusnode.agents")

CHARACTERS_DIR = "./characters"


class DockerError(RuntimeError):
    """A docker command failed; the message holds its output."""


@dataclass
class Agent:
    """An agent container and the details shown to clients."""

    id: str = ""
    name: str = ""
    clients: list[Any] = field(default_factory=list)
    domain: str = ""
    status: str = ""
    avatar_img: str = ""
    cover_img: str = ""
    voice_model: str = ""
    organization: str = ""
    port: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["clients"] = list(self.clients)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Agent":
        def text(key: str) -> str:
            value = data.get(key)
            return "" if value is None else str(value)

        return cls(
            id=text("id"),
            name=text("name"),
            clients=list(data.get("clients") or []),
            domain=text("domain"),
            status=text("status"),
            avatar_img=text("avatar_img"),
            cover_img=text("cover_img"),
            voice_model=text("voice_model"),
            organization=text("organization"),
            port=int(data.get("port") or 0),
        )


def _same_id(left: str, right: str) -> bool:
    return left.casefold() == right.casefold()


class AgentStore:
    """The agents registry file."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def load(self) -> list[Agent]:
        """Return all agents; a missing file holds none."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        items = json.loads(raw)
        return [Agent.from_dict(item) for item in items or []]

    def save_all(self, agents: list[Agent]) -> None:
        """Replace the registry with the given agents."""
        text = json.dumps([a.to_dict() for a in agents], indent=2) + "\n"
        self.path.write_text(text, encoding="utf-8")

    def append(self, agent: Agent) -> None:
        """Add an agent to the registry."""
        with self._lock:
            agents = self.load()
            agents.append(agent)
            self.save_all(agents)

    def find(self, agent_id: str) -> Agent | None:
        """Return the agent with this id, compared case-insensitively."""
        return next((a for a in self.load() if _same_id(a.id, agent_id)), None)

    def remove(self, agent_id: str) -> Agent:
        """Remove the agent with this id and return it; KeyError if unknown."""
        with self._lock:
            agents = self.load()
            for position, agent in enumerate(agents):
                if _same_id(agent.id, agent_id):
                    del agents[position]
                    self.save_all(agents)
                    return agent
        raise KeyError(agent_id)

    def set_status(self, agent_id: str, status: str) -> Agent:
        """Set the status of an agent and return it; KeyError if unknown."""
        with self._lock:
            agents = self.load()
            for position, agent in enumerate(agents):
                if _same_id(agent.id, agent_id):
                    updated = replace(agent, status=status)
                    agents[position] = updated
                    self.save_all(agents)
                    return updated
        raise KeyError(agent_id)


def default_agents_path() -> Path:
    """Return the registry location, agents.json in ~/erebrus."""
    return Path.home() / "erebrus" / "agents.json"


def get_available_port() -> int:
    """Return a TCP port that is free on this host."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("", 0))
        return sock.getsockname()[1]


def run_docker(*args: str) -> str:
    """Run a docker command and return its combined output."""
    try:
        result = subprocess.run(
            ["docker", *args],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
    except OSError as exc:
        raise DockerError(str(exc)) from exc
    output = result.stdout or ""
    if result.returncode != 0:
        raise DockerError(output)
    return output


def _docker_quiet(*args: str) -> None:
    try:
        subprocess.run(["docker", *args], capture_output=True, text=True)
    except OSError:
        pass


def _agents_url(port: int) -> str:
    return f"http://localhost:{port}/agents"


def wait_until_ready(port: int, retries: int = 60, delay: float = 1.0) -> bool:
    """Poll an agent container until it answers 200; return whether it did."""
    url = _agents_url(port)
    for attempt in range(1, retries + 1):
        try:
            with urllib.request.urlopen(url, timeout=10) as response:
                if response.status == 200:
                    logger.info("Container is ready after %d attempts", attempt)
                    return True
                logger.info(
                    "Attempt %d/%d: received status code %d, waiting...",
                    attempt, retries, response.status,
                )
        except urllib.error.HTTPError as exc:
            logger.info(
                "Attempt %d/%d: received status code %d, waiting...",
                attempt, retries, exc.code,
            )
        except OSError as exc:
            logger.info("Attempt %d/%d: container not ready yet: %s", attempt, retries, exc)
        time.sleep(delay)
    return False


def fetch_container_agents(port: int) -> list[Agent]:
    """Return the agents an agent container reports at /agents."""
    with urllib.request.urlopen(_agents_url(port), timeout=10) as response:
        data = json.loads(response.read())
    if not isinstance(data, dict):
        raise ValueError("agents response is not an object")
    return [Agent.from_dict(item) for item in data.get("agents") or []]


def recreate_agent(agent: Agent, image: str | None = None) -> None:
    """Replace an agent's container with a fresh one from its image."""
    if image is None:
        image = os.environ.get("DOCKER_IMAGE_AGENT", "")
    _docker_quiet("stop", agent.name)
    _docker_quiet("rm", agent.name)
    try:
        run_docker(
            "run", "-d",
            "--name", agent.name,
            "-p", f"{agent.port}:3000",
            "-v", f"{CHARACTERS_DIR}:/app/characters",
            image,
            "pnpm", "start",
            f"--character=/app/characters/{agent.name}/{agent.name}.character.json",
        )
    except DockerError as exc:
        raise DockerError(f"failed to recreate container: {exc}") from exc
    if agent.status == "inactive":
        try:
            run_docker("pause", agent.name)
        except DockerError as exc:
            logger.error("Error performing action pause on Agent: %s", exc)
    logger.info("Successfully recreated the agent container: %s", agent.name)


def _is_running(name: str) -> bool | None:
    try:
        result = subprocess.run(
            ["docker", "inspect", "-f", "{{.State.Running}}", name],
            capture_output=True,
            text=True,
        )
    except OSError:
        return None
    if result.returncode != 0:
        return None
    return (result.stdout or "").strip() == "true"


def _try_recreate(agent: Agent) -> None:
    try:
        recreate_agent(agent)
    except DockerError as exc:
        logger.error("Failed to recreate agent %s: %s", agent.name, exc)


def recover_agents(store: AgentStore) -> bool:
    """Restart or recreate agents whose containers are not running.

    Returns False when a restart could not be completed, after which
    monitoring stops.
    """
    for agent in store.load():
        running = _is_running(agent.name)
        if running is None:
            logger.error("Error checking container status for %s", agent.name)
            _try_recreate(agent)
            continue
        if running:
            continue
        logger.info("Agent %s is not running. Attempting to restart...", agent.name)
        try:
            run_docker("restart", agent.name)
        except DockerError as exc:
            logger.error("Failed to restart agent %s: %s", agent.name, exc)
            _try_recreate(agent)
            return False
        if agent.status == "inactive":
            try:
                run_docker("pause", agent.name)
            except DockerError as exc:
                logger.error("Error performing action pause on Agent: %s", exc)
                return False
        logger.info("Agent %s is restored", agent.name)
    return True


def monitor_agents(
    store: AgentStore,
    interval: float = 15.0,
    stop_event: threading.Event | None = None,
) -> threading.Thread:
    """Check the agents every interval in a background thread and return it."""
    stop = stop_event if stop_event is not None else threading.Event()

    def loop() -> None:
        while not stop.wait(interval):
            try:
                keep_going = recover_agents(store)
            except (OSError, ValueError) as exc:
                logger.error("Error loading agents for recovery: %s", exc)
                continue
            if not keep_going:
                return

    thread = threading.Thread(target=loop, name="agent-monitor", daemon=True)
    thread.start()
    return thread