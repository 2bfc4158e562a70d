# pxc

`pxc` is a client toolkit for Portworx storage clusters. It ships a small
command-line program and a library of building blocks: JWT token handling,
snapshot schedule parsing, a YAML-backed client configuration, Kubernetes log
streaming helpers and a `kubectl port-forward` tunnel.

## Installation

Install the package from a checkout of this repository with your usual Python
package installer. Python 3.10 or later is required. The test suite needs the
`test` extra.

## Command line

The package installs a `pxc` command:

    pxc version

prints the client version and the Portworx SDK version number the client
reports.

    pxc --options

lists the global options accepted by every command:

- `--config-file` – configuration file (default `~/.pxc/config.yml`)
- `--token` – authentication token
- `--secret-name`, `--secret-namespace` – Kubernetes secret holding the token
- `-v`, `--verbosity` – 0 fatal only, 1 warnings, 2 info, 3 or more debug

Run `pxc` with no arguments to see the help text. The configuration file is
loaded before any command runs; an invalid file makes the command fail with
exit status 1.

## Library

### Tokens

`pxc.auth` creates and inspects JWT tokens. Signatures come from
`pxc.signature`: a shared secret (HS256), an RSA private key (RS256) or an
ECDSA private key (ES256), read from PEM bytes or from a file.

```python
import time

from pxc.auth import Claims, Options, get_expiration, token, token_claims
from pxc.signature import new_signature_shared_secret

claims = Claims(name="Jane Doe", email="jane@example.com", roles=["system.user"])
signature = new_signature_shared_secret("secret")
options = Options(expiration=int(time.time()) + 600, issuer="portworx.example.com")

raw = token(claims, signature, options)
print(token_claims(raw).email)   # jane@example.com
print(get_expiration(raw))
```

`is_jwt_token`, `validate_token`, `token_issuer` and `get_issued_at_time`
look at a token without verifying its signature. Errors are raised as
`pxc.auth.TokenError`; unreadable keys raise `pxc.signature.SignatureError`.

### Durations

`pxc.duration.parse_to_duration` reads the short form used on the command
line: a number followed by one of `s`, `m`, `h`, `d` or `y`, such as `5d` or
`1y`, and returns a `timedelta`. Anything else raises `ValueError`.

### Snapshot schedules

`pxc.sched` parses and prints snapshot schedules, either in their YAML form
or in the compact form `type=spec[,keep]`:

```python
from pxc.sched import parse_schedule_and_policies, schedule_summary

intervals, policies = parse_schedule_and_policies("daily=@02:30,7;policy=gold")
print(schedule_summary(intervals, policies))
# policy=gold;daily @02:30,keep last 7
```

The schedule types are `periodic` (minutes), `daily` (`@hh:mm`), `weekly`
(`weekday@hh:mm`) and `monthly` (`day@hh:mm`). `schedule_string` writes
schedules back in YAML form, and `setup_intv_with_defaults` fills in the
default number of snapshots to keep for each type (daily 7, weekly and
periodic 5, monthly 12).

### Configuration

`pxc.config` keeps clusters, credentials and contexts in a YAML file. A
missing or empty file yields a `default` context pointing at
`127.0.0.1:9020`. `cm()` returns the shared `ConfigManager`, whose
`config_save_cluster`, `config_save_auth_info`, `config_save_context`,
`config_use_context` and related methods update the file, and whose
`get_endpoint` returns either a tunnel endpoint or the current cluster's
endpoint. Problems are raised as `pxc.config.ConfigError`.

### Kubernetes helpers

- `pxc.portforward.KubectlPortForwarder` runs `kubectl port-forward` to the
  cluster's tunnel service and reports the local endpoint;
  `get_endpoint_from_kubectl_output` reads that endpoint from kubectl's
  output, and `start_tunnel` / `stop_tunnel` manage a single shared tunnel.
- `pxc.logs.KubeConnection` lists pods and claims and writes container logs,
  with optional pod prefixes and line filters, through a client object you
  supply (`list_pods`, `list_pvcs`, `stream_logs`).
- `pxc.logops` adds the log options to an `argparse` parser, turns parsed
  arguments into `LogOptions`, and selects the Portworx pods on given nodes.
- `pxc.pxpvc.PxPvc` matches a persistent volume claim with its Portworx
  volume and the pods that use it.

### Other modules

- `pxc.prototime` converts between `datetime`/`timedelta` values and protobuf
  `Timestamp`/`Duration` messages.
- `pxc.commander` collects the initialisation functions that commands
  register and runs them in order.

## What this package does not do

- It does not talk to the Portworx API itself: there is no gRPC connection
  and no commands for volumes, nodes, snapshots or alerts. The only command
  is `version`.
- It does not read kubeconfig files or connect to a Kubernetes API server;
  the Kubernetes helpers work through a client object you pass in, and the
  tunnel relies on `kubectl` being on your path.