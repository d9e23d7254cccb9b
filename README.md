# nexusnode

`nexusnode` is a small HTTP service for a node host. It does three jobs:

- **Reverse-proxy services.** It keeps a list of services in `caddy.json` and
  writes a Caddy site block for each one, so that a domain is proxied to an
  `ip:port` on the host.
- **Agents.** It starts agent containers with Docker from an uploaded
  character file, gives each a free host port and a subdomain, keeps the list
  in `~/erebrus/agents.json`, and restarts or recreates containers that stop.
- **Wallet login challenges.** It hands out challenge ids for a wallet
  address, and offers functions that check signatures over a challenge for
  Ethereum, peaq, Aptos, Sui and Solana wallets.

## Installing

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Running

```
nexusnode
```

Options:

| Option | Default | Meaning |
| --- | --- | --- |
| `--host` | `$HOST` or `0.0.0.0` | address to listen on |
| `--port` | `$HTTP_PORT` or `4000` | port to listen on |
| `--no-monitor` | off | do not restart stopped agent containers |

Unless `--no-monitor` is given, a background thread checks the registered
agents every 15 seconds (`nexusnode.agents.monitor_agents`) and restarts, or
recreates, containers that are not running.

The web application is built by `nexusnode.webapp.create_app`. Its routes live
under `/api/v1.0`:

| Method | Path | Purpose |
| --- | --- | --- |
| `POST` | `/api/v1.0/caddy` | add a service (`name`, `ipAddress`, `port` in JSON) |
| `GET` | `/api/v1.0/caddy` | list services |
| `GET` | `/api/v1.0/caddy/<name>` | one service |
| `DELETE` | `/api/v1.0/caddy/<name>` | remove a service |
| `POST` | `/api/v1.0/agents` | create an agent from a `character_file` upload |
| `GET` | `/api/v1.0/agents` | list agents |
| `GET` | `/api/v1.0/agents/<agentId>` | one agent |
| `DELETE` | `/api/v1.0/agents/<agentId>` | stop, remove and forget an agent |
| `PATCH` | `/api/v1.0/agents/manage/<agentId>?action=pause\|resume` | pause or resume an agent |
| `GET` | `/api/v1.0/authenticate?walletAddress=...&chainName=...` | get a challenge id |

Service names must be 4 to 50 bytes long and unique, and an `ipAddress` and
`port` pair may be registered only once. Each generated site block asks for
TLS with the address `admin@example.com` (`nexusnode.caddy_template.TLS_EMAIL`).

## Configuration

Settings are read from the environment:

| Variable | Used for |
| --- | --- |
| `CADDY_CONF_DIR` | directory holding `caddy.json` and the generated Caddy file |
| `CADDY_INTERFACE_NAME` | file name of the generated Caddy configuration |
| `SERVICE_CONF_DIR` | directory under the home directory that gets a copy of `caddy.json` |
| `NODE_TYPE` | recorded as the type of each new service |
| `DOMAIN` | domain given to services added through `POST /caddy` |
| `EREBRUS_DOMAIN` | parent domain for agents when the request gives none |
| `DOCKER_IMAGE_AGENT` | image for agent containers when the request gives none |
| `AUTH_EULA` | text returned with a challenge id, signed in front of it |
| `GATEWAY_WALLET` | wallet for which `nexusnode.access.check_gateway_access` is true (`*` allows any) |
| `HOST`, `HTTP_PORT` | defaults for `--host` and `--port` |

## Using it as a library

```python
from nexusnode.challenge import ChallengeStore, validate_address
from nexusnode.signatures import AuthenticateRequest, verify_chain_signature
from nexusnode.agents import AgentStore, default_agents_path

validate_address("ethereum", "0x" + "ab" * 20)

store = ChallengeStore()
challenge_id = store.generate("0x" + "ab" * 20, "ethereum")

# Later, with a signature made by the wallet over AUTH_EULA + challenge_id:
# wallet = verify_chain_signature(
#     AuthenticateRequest(challenge_id=challenge_id, signature=sig, chain_name="ethereum"),
#     eula, store,
# )

agents = AgentStore(default_agents_path())
for agent in agents.load():
    print(agent.name, agent.status)
```

- `nexusnode.services` reads, adds and deletes services and rewrites the Caddy
  file (`read_services`, `add_service`, `add_services_direct`,
  `delete_service`, `update_caddy_config`).
- `nexusnode.challenge.ChallengeStore` keeps only the most recent challenge:
  issuing a new one forgets the earlier ones.
- `nexusnode.signatures` has `check_sign_ethereum`, `check_sign_aptos`,
  `check_sign_sui` and `check_sign_solana`, and `verify_chain_signature` to
  pick one by chain name. `check_sign_sui` compares only the address derived
  from the key in the signature, and `check_sign_solana` requires the key and
  signature to decode but does not let the ed25519 check decide the result.
- `nexusnode.installation.ensure_docker_and_caddy()` installs Docker and Caddy
  with `apt-get` when they are missing, runs a throwaway Alpine container, and
  restarts Caddy; it needs root rights and a Debian-style system with systemd.

## What it does not do

- There is no `POST /authenticate` route and no session tokens: the package
  issues challenges and can check signatures, but does not log a wallet in.
- `check_gateway_access` is not applied to any route.
- `GET /caddy/<name>` does not probe whether the service's port is open.
- There are no routes for VPN clients, VPN server settings, server status or
  speed tests.