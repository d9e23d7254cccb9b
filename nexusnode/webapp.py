"""HTTP API of the node: agents, proxied services and login challenges."""

from __future__ import annotations

import argparse
import json
import logging
import os
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from flask import Blueprint, Flask, jsonify, request

from nexusnode.agents import (
    CHARACTERS_DIR,
    Agent,
    AgentStore,
    DockerError,
    default_agents_path,
    fetch_container_agents,
    get_available_port,
    monitor_agents,
    run_docker,
    wait_until_ready,
)
from nexusnode.challenge import (
    ChallengeStore,
    InvalidAddressError,
    InvalidChainError,
    validate_address,
)
from nexusnode.service_util import Service, message, message_service
from nexusnode.services import (
    ServiceValidationError,
    add_service,
    add_services_direct,
    delete_service,
    read_service,
    read_services,
)

logger = logging.getLogger("nexusnode.webapp")

_SERVER_ERROR = "Server error, Try after some time or Contact Admin..."
_INT_RE = re.compile(r"[+-]?[0-9]+")
_CHAIN_HINT = (
    "; please pass chain name between solana, peaq, aptos, sui, eclipse, ethereum"
)


def _error_response(status: int, text: str) -> dict[str, Any]:
    return {"status": status, "success": False, "error": text}


def _agent_details(agent: Agent, with_domain: bool) -> dict[str, Any]:
    details: dict[str, Any] = {
        "id": agent.id,
        "name": agent.name,
        "clients": list(agent.clients),
        "status": agent.status,
        "avatar_img": agent.avatar_img,
        "cover_img": agent.cover_img,
        "voice_model": agent.voice_model,
        "organization": agent.organization,
    }
    if with_domain:
        details["domain"] = agent.domain
    return details


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _agents_blueprint(store: AgentStore) -> Blueprint:
    bp = Blueprint("agents", __name__, url_prefix="/agents")

    @bp.get("")
    def get_agents():
        try:
            agents = store.load()
        except (OSError, ValueError) as exc:
            logger.error("Error loading agents: %s", exc)
            return jsonify({"error": "Failed to load agents"}), 500
        return jsonify({"agents": [a.to_dict() for a in agents]}), 200

    @bp.get("/<agent_id>")
    def get_agent(agent_id: str):
        try:
            agent = store.find(agent_id)
        except (OSError, ValueError) as exc:
            logger.error("Error loading agents: %s", exc)
            return jsonify({"error": "Failed to load agents"}), 500
        if agent is None:
            return jsonify({"error": "Agent not found"}), 404
        return jsonify({"agent": _agent_details(agent, with_domain=True)}), 200

    @bp.post("")
    def add_agent():
        form = request.form
        upload = request.files.get("character_file")
        if upload is None:
            logger.error("Error retrieving character file")
            return jsonify({"error": "Failed to retrieve character file"}), 400
        try:
            character = json.load(upload.stream)
        except (ValueError, UnicodeDecodeError) as exc:
            logger.error("Invalid JSON format: %s", exc)
            return jsonify({"error": "Invalid JSON file"}), 400
        if not isinstance(character, dict):
            return jsonify({"error": "Invalid JSON file"}), 400
        agent_name = character.get("name")
        if not isinstance(agent_name, str) or not agent_name:
            logger.error("Missing 'name' field in JSON file")
            return jsonify({"error": "'name' field is required in the JSON file"}), 400

        filename = Path(upload.filename or "character.json").name
        target_dir = Path(CHARACTERS_DIR) / agent_name
        try:
            target_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
            upload.stream.seek(0)
            upload.save(str(target_dir / filename))
        except OSError as exc:
            logger.error("Error saving character file: %s", exc)
            return jsonify({"error": f"Failed to save character file: {exc}"}), 500

        image = form.get("docker_url", "") or os.environ.get("DOCKER_IMAGE_AGENT", "")
        try:
            run_docker("pull", image)
        except DockerError as exc:
            return jsonify({"error": f"Failed to pull Docker image: {exc}"}), 500

        try:
            port = get_available_port()
        except OSError as exc:
            logger.error("Error finding available port: %s", exc)
            return jsonify({"error": "Failed to find an available port"}), 500

        try:
            run_docker(
                "run", "-d",
                "--name", agent_name,
                "-p", f"{port}:3000",
                "-v", f"{CHARACTERS_DIR}:/app/characters",
                image,
                "pnpm", "start",
                f"--character=/app/characters/{agent_name}/{filename}",
            )
        except DockerError as exc:
            return jsonify({"error": f"Failed to start Docker container: {exc}"}), 500

        wait_until_ready(port)

        domain = form.get("domain", "") or os.environ.get("EREBRUS_DOMAIN", "")
        try:
            add_services_direct(domain, agent_name, port)
        except (ServiceValidationError, OSError, RuntimeError, ValueError) as exc:
            logger.error("Error adding services: %s", exc)
            return jsonify({"error": "Failed to add services"}), 500

        try:
            reported = fetch_container_agents(port)
        except ValueError as exc:
            logger.error("Error parsing agents response: %s", exc)
            return jsonify({"error": "Failed to parse agents response"}), 500
        except OSError as exc:
            logger.error("Error fetching agents: %s", exc)
            return jsonify({"error": "Failed to fetch agents from container"}), 500

        created = next(
            (a for a in reported if a.name.casefold() == agent_name.casefold()), None
        )
        if created is None:
            logger.error("Agent creation failed for: %s", agent_name)
            return jsonify({"error": "Agent creation failed"}), 500

        full_domain = f"{agent_name}.{domain}"
        created.port = port
        created.domain = full_domain
        created.status = "active"
        created.avatar_img = form.get("avatar_img", "")
        created.cover_img = form.get("cover_img", "")
        created.voice_model = form.get("voice_model", "")
        created.organization = form.get("organization", "")
        try:
            store.append(created)
        except (OSError, ValueError) as exc:
            logger.error("Error saving agent: %s", exc)

        return jsonify(
            {"agent": _agent_details(created, with_domain=False), "domain": full_domain}
        ), 200

    @bp.delete("/<agent_id>")
    def delete_agent(agent_id: str):
        try:
            agent = store.find(agent_id)
        except (OSError, ValueError) as exc:
            logger.error("Error loading agents: %s", exc)
            return jsonify({"error": "Failed to load agents"}), 500
        if agent is None:
            return jsonify({"error": "Agent not found"}), 404
        try:
            run_docker("stop", agent.name)
        except DockerError as exc:
            return jsonify({"error": f"Failed to stop Docker container: {exc}"}), 500
        try:
            run_docker("rm", agent.name)
        except DockerError as exc:
            return jsonify({"error": f"Failed to remove Docker container: {exc}"}), 500
        try:
            delete_service(agent.name)
        except (OSError, RuntimeError, ValueError) as exc:
            logger.error("Error removing service for %s: %s", agent.name, exc)
        try:
            store.remove(agent_id)
        except KeyError:
            return jsonify({"error": "Agent not found"}), 404
        except (OSError, ValueError) as exc:
            logger.error("Error saving agents: %s", exc)
            return jsonify({"error": "Failed to save agents"}), 500
        logger.info("Agent %s deleted successfully", agent_id)
        return jsonify({"message": f"Agent {agent_id} deleted successfully"}), 200

    @bp.patch("/manage/<agent_id>")
    def manage_agent(agent_id: str):
        action = request.args.get("action", "")
        if action not in ("pause", "resume"):
            return jsonify({"error": "Invalid action. Use 'pause' or 'resume'"}), 400
        docker_action = "pause" if action == "pause" else "unpause"
        status = "inactive" if action == "pause" else "active"
        try:
            agent = store.set_status(agent_id, status)
        except KeyError:
            return jsonify({"error": "Agent not found"}), 404
        except ValueError as exc:
            logger.error("Error loading agents: %s", exc)
            return jsonify({"error": "Failed to load agents"}), 500
        except OSError as exc:
            logger.error("Error writing agents file: %s", exc)
            return jsonify({"error": "Failed to save updated agents"}), 500
        try:
            run_docker(docker_action, agent.name)
        except DockerError as exc:
            return jsonify({"error": f"Failed to {docker_action} Agent: {exc}"}), 500
        return jsonify(
            {"message": f"Agent '{agent_id}' {docker_action}ed successfully"}
        ), 200

    return bp


def _caddy_blueprint() -> Blueprint:
    bp = Blueprint("caddy", __name__, url_prefix="/caddy")

    @bp.post("")
    def add_services():
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return jsonify({"error": "invalid request body"}), 400
        fields = {}
        for key in ("name", "ipAddress", "port"):
            value = payload.get(key)
            if not isinstance(value, str) or not value:
                return jsonify({"error": f"{key} is required"}), 400
            fields[key] = value

        if _INT_RE.fullmatch(fields["port"]) is None:
            return jsonify(message(400, "Invalid Port")), 500
        port = int(fields["port"])

        try:
            from nexusnode.services import validate_service

            validate_service(fields["name"], port, fields["ipAddress"])
        except ServiceValidationError as exc:
            return jsonify(message(404, str(exc))), 400
        except (OSError, RuntimeError, ValueError) as exc:
            return jsonify(message(500, _SERVER_ERROR + str(exc))), 200

        service = Service(
            name=fields["name"],
            type=os.environ.get("NODE_TYPE", ""),
            port=fields["port"],
            domain=os.environ.get("DOMAIN", ""),
            ip_address=fields["ipAddress"],
            created_at=_utc_timestamp(),
        )
        try:
            add_service(service)
        except (OSError, RuntimeError, ValueError) as exc:
            return jsonify(message(500, _SERVER_ERROR + str(exc))), 500
        return jsonify(message_service(200, service)), 200

    @bp.get("")
    def get_services():
        try:
            services = read_services()
        except (OSError, RuntimeError, ValueError):
            return jsonify(message(500, _SERVER_ERROR)), 500
        return jsonify({"services": [s.to_dict() for s in services.services]}), 200

    @bp.get("/<name>")
    def get_service(name: str):
        try:
            service = read_service(name)
        except (OSError, RuntimeError, ValueError):
            return jsonify(message(500, _SERVER_ERROR)), 500
        if service is None:
            return jsonify(message(404, "Service Doesn't Exists")), 404
        if _INT_RE.fullmatch(service.port) is None:
            logger.warning("string conv error: %r", service.port)
            return jsonify(message(500, _SERVER_ERROR)), 500
        return jsonify(message_service(200, service)), 200

    @bp.delete("/<name>")
    def delete_service_route(name: str):
        try:
            service = read_service(name)
        except (OSError, RuntimeError, ValueError):
            return jsonify(message(500, _SERVER_ERROR)), 500
        if service is None:
            return jsonify(message(400, "Service Doesn't Exists")), 400
        try:
            delete_service(name)
        except (OSError, RuntimeError, ValueError):
            return jsonify(message(500, _SERVER_ERROR)), 500
        return jsonify(message(200, f"Deleted Services {name}")), 200

    return bp


def _authenticate_blueprint(challenges: ChallengeStore) -> Blueprint:
    bp = Blueprint("authenticate", __name__, url_prefix="/authenticate")

    @bp.get("")
    def get_challenge_id():
        wallet_address = request.args.get("walletAddress", "")
        chain_name = request.args.get("chainName", "")
        if not wallet_address or not chain_name:
            return jsonify(_error_response(403, "Empty Wallet Address")), 403
        try:
            validate_address(chain_name, wallet_address)
        except InvalidChainError as exc:
            text = f"{exc}chain name = {chain_name}{_CHAIN_HINT}"
            return jsonify(_error_response(406, text)), 406
        except InvalidAddressError as exc:
            return jsonify(_error_response(406, str(exc))), 406
        challenge_id = challenges.generate(wallet_address, chain_name)
        body: dict[str, Any] = {"challangeId": challenge_id}
        eula = os.environ.get("AUTH_EULA", "")
        if eula:
            body["eula"] = eula
        return jsonify(body), 200

    return bp


def create_app(
    agent_store: AgentStore | None = None,
    challenge_store: ChallengeStore | None = None,
) -> Flask:
    """Build the web application with every API route under /api/v1.0."""
    agents = agent_store if agent_store is not None else AgentStore(default_agents_path())
    challenges = challenge_store if challenge_store is not None else ChallengeStore()

    app = Flask("nexusnode")
    api = Blueprint("api", __name__, url_prefix="/api/v1.0")
    api.register_blueprint(_agents_blueprint(agents))
    api.register_blueprint(_caddy_blueprint())
    api.register_blueprint(_authenticate_blueprint(challenges))
    app.register_blueprint(api)
    app.config["AGENT_STORE"] = agents
    app.config["CHALLENGE_STORE"] = challenges
    return app


def main(argv: Sequence[str] | None = None) -> int:
    """Serve the API and watch over the agent containers."""
    parser = argparse.ArgumentParser(prog="nexusnode")
    parser.add_argument("--host", default=os.environ.get("HOST", "0.0.0.0"))
    parser.add_argument(
        "--port", type=int, default=int(os.environ.get("HTTP_PORT", "4000"))
    )
    parser.add_argument(
        "--no-monitor", action="store_true", help="do not restart stopped agents"
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    app = create_app()
    stop = threading.Event()
    if not args.no_monitor:
        monitor_agents(app.config["AGENT_STORE"], stop_event=stop)
    try:
        app.run(host=args.host, port=args.port)
    finally:
        stop.set()
    return 0