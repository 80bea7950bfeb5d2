"""This example connects to a board running StandardFirmata, blinks the on-board LED, streams analog channel 0 and
measures the round-trip latency of version queries.

Requires a board connected over USB. The port is discovered automatically.
"""

import numpy as np
from ataraxis_time import PrecisionTimer
from ataraxis_base_utilities import console

from ataraxis_firmata import Board, PinModes, BoardEvents, SerialTransport, BoardConfiguration, find_port

console.enable()

board = Board(SerialTransport(find_port()), BoardConfiguration(sampling_interval=50))
board.on(BoardEvents.ERROR, lambda error: console.echo(message=f"Board error: {error}"))
board.open()
if not board.wait_until_ready(timeout=10000):
    board.close()
    raise SystemExit("The board did not complete the handshake.")

console.echo(message=f"Connected to {board.firmware.name} {board.firmware.version} with {len(board.pins)} pins.")

readings = []
board.pin_mode(13, PinModes.OUTPUT)
board.analog_read(0, readings.append)

timer = PrecisionTimer("ms")
state = 0
for _ in range(10):
    state ^= 1
    board.digital_write(13, state)
    timer.reset()
    while timer.elapsed < 500:
        board.poll()
console.echo(message=f"Received {len(readings)} analog readings, last value {readings[-1] if readings else None}.")

# Measures the round-trip time of version queries.
latency_timer = PrecisionTimer("us")
deltas = []
for _ in range(100):
    replies = []
    board.report_version(replies.append)
    latency_timer.reset()
    while not replies:
        board.poll()
    deltas.append(latency_timer.elapsed)

# Discards the first cycles, which include numba compilation and port warm-up.
console.echo(
    message=f"Version query round trip: {np.around(np.mean(deltas[10:]), 3)} +- {np.around(np.std(deltas[10:]), 3)} us."
)

board.report_analog_pin(0, False)
board.close()
