# Example: pyDeconzBridge Usage Demo
# ----------------------------------
# This script demonstrates how to connect to a deCONZ gateway using the pyDeconzBridge library.
# It pairs with the gateway if no API key is known, prints the gateway details and then
# keeps the websocket event stream open for a minute.
#
# Usage:
#   - Set the gateway address below, or use a .env file with the following variables:
#       DECONZ_HOST, DECONZ_HTTP_PORT, DECONZ_PORT, DECONZ_APIKEY, DECONZ_TIMEOUT
#   - Unlock pairing in the gateway UI ("Authenticate app") if you have no API key yet
#   - Run: python example.py

import time

import pydeconzbridge
from pydeconzbridge.config import BridgeConfig

# Enable debug logging for more verbose output (optional for learning)
# pydeconzbridge.set_debug(True)

# Load settings from the environment or a .env file
config = BridgeConfig.from_env()
if not config.host:
    config.host = "10.0.1.123"        # Address of your deCONZ gateway

# Print each status change and each event pushed by the gateway
def on_status(report):
    print("Status: %s" % report)

def on_event(event):
    print("Event: %s %s/%s" % (event.get('e'), event.get('r'), event.get('id')))

print(f"Connecting to deCONZ gateway at {config.host}...")
bridge = pydeconzbridge.DeconzBridge(config.host, http_port=config.http_port, port=config.port,
                                     apikey=config.apikey, timeout=config.timeout,
                                     status_callback=on_status, message_handler=on_event)
bridge.initialize()

# --- Wait for the API key (pairing) ---
while not bridge.config.apikey:
    time.sleep(1)

# --- Gateway Info ---
state = bridge.get_bridge_full_state().result(timeout=10)
if state:
    print("Gateway: %s - Software: %s - Firmware: %s" % (state.config.name, state.config.swversion,
                                                          state.config.fwversion))
    print("Sensors: %d - Lights: %d - Groups: %d\n" % (len(state.sensors), len(state.lights), len(state.groups)))
print("Properties: %r\n" % bridge.properties.as_dict())

# --- Event Stream ---
time.sleep(60)
print("Connection: %s" % bridge.connection_state.value)
bridge.close()
