# pyDeconzBridge Module - Command Line
# -*- coding: utf-8 -*-
"""
 Python module to manage the connection to a deCONZ Zigbee gateway

 Command Line:
    python -m pydeconzbridge <pair|state|run|version>

 Connection settings default to the DECONZ_* environment variables
 (a .env file in the current directory is read as well).
"""

import argparse
import json
import sys
import time

# Modules
from pydeconzbridge import DeconzBridge, version, set_debug
from pydeconzbridge.config import BridgeConfig
from pydeconzbridge.exceptions import BridgeInvalidConfigurationParameter

env = BridgeConfig.from_env()
env_cachefile = BridgeConfig.cachefile_from_env()

# Setup parser and groups
p = argparse.ArgumentParser(prog="pydeconzbridge", description=f"pyDeconzBridge Module v{version}")
subparsers = p.add_subparsers(dest="command", title='commands (run <command> -h to see usage information)',
                              required=True)


def connection_args(parser):
    parser.add_argument("-host", type=str, default=env.host, help="Host or IP address of the gateway")
    parser.add_argument("-httpport", type=int, default=env.http_port,
                        help=f"REST API port [Default={env.http_port}]")
    parser.add_argument("-port", type=int, default=env.port,
                        help="Websocket port, 0 uses the port reported by the gateway [Default=0]")
    parser.add_argument("-apikey", type=str, default=env.apikey, help="API key for the gateway")
    parser.add_argument("-timeout", type=float, default=env.timeout,
                        help=f"Seconds to wait for http responses [Default={env.timeout}]")
    parser.add_argument("-cachefile", type=str, default=env_cachefile,
                        help=f"Path to the persisted configuration [Default={env_cachefile}]")


pair_args = subparsers.add_parser("pair", help='Request an API key (press "Authenticate app" in the gateway)')
connection_args(pair_args)
pair_args.add_argument("-wait", type=int, default=120, help="Seconds to wait for approval [Default=120]")

state_args = subparsers.add_parser("state", help='Print the gateway configuration')
connection_args(state_args)
state_args.add_argument("-format", type=str, default="text", help="Output format: text or json")

run_args = subparsers.add_parser("run", help='Connect and keep the websocket open until Ctrl-C')
connection_args(run_args)

version_args = subparsers.add_parser("version", help='Print version information')

# Add a global debug flag
p.add_argument("-debug", action="store_true", default=False, help="Enable debug output")

if len(sys.argv) == 1:
    p.print_help(sys.stderr)
    sys.exit(1)

# parse args
args = p.parse_args()
command = args.command

# Set Debug Mode
if args.debug:
    set_debug(True)


def create_bridge(**kwargs):
    try:
        return DeconzBridge(host=args.host, http_port=args.httpport, port=args.port, apikey=args.apikey,
                            timeout=args.timeout, cachefile=args.cachefile, **kwargs)
    except BridgeInvalidConfigurationParameter as exc:
        print(f"ERROR: {exc}")
        sys.exit(1)


def print_status(report):
    print(f"  {time.strftime('%H:%M:%S')} {report}")


if command == 'pair':
    print("pyDeconzBridge [%s] - Pairing\n" % version)
    bridge = create_bridge(status_callback=print_status)
    if bridge.config.apikey:
        print(f"API key already configured: {bridge.config.apikey}")
        bridge.close()
        sys.exit(0)
    bridge.auth.request_api_key()
    deadline = time.time() + args.wait
    try:
        while not bridge.config.apikey and time.time() < deadline:
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass
    bridge.close()
    if bridge.config.apikey:
        print(f"\nAPI key stored in {args.cachefile}: {bridge.config.apikey}")
    else:
        print("\nERROR: No API key received")
        sys.exit(1)

elif command == 'state':
    bridge = create_bridge()
    if not bridge.config.apikey:
        print("ERROR: No API key - run 'python -m pydeconzbridge pair' first")
        bridge.close()
        sys.exit(1)
    state = bridge.get_bridge_full_state().result(timeout=bridge.config.timeout + 5)
    report = bridge.status()
    bridge.close()
    if state is None:
        print(f"ERROR: Unable to read gateway state ({report})")
        sys.exit(1)
    data = {"name": state.config.name, "websocketport": state.config.websocketport,
            "sensors": len(state.sensors), "lights": len(state.lights), "groups": len(state.groups)}
    data.update(state.config.properties())
    if args.format == 'json':
        print(json.dumps(data, indent=4))
    else:
        for key, value in data.items():
            print(f"  {key:<15} {value}")

elif command == 'run':
    print("pyDeconzBridge [%s] - Connecting to %s (Ctrl-C to stop)\n" % (version, args.host))
    bridge = create_bridge(status_callback=print_status,
                           message_handler=lambda event: print(f"  event: {json.dumps(event)}"))
    bridge.initialize()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopping")
    bridge.close()

# Print Version
elif command == 'version':
    print("pyDeconzBridge [%s]" % version)
