#!/usr/bin/env python3
"""
Interactive REPL for Tektronix TDS3000 oscilloscopes.

Use to connect to a scope, reset it, and acquire averaged waveforms.

    tds-repl TCPIP::192.168.1.20::INSTR
    tds-repl --mock
"""

import cmd
import logging
import shlex
import sys
import traceback
from typing import Dict, Optional

from tds_instruments import (
    AcquireStatus,
    AcquisitionConfig,
    BusyStatus,
    ColorPrinter,
    CurveEncoding,
    LIBRE_VISA,
    NI_VISA,
    PYVISA_PY,
    ResetStatus,
    Resolution,
    ScopeError,
    Tektronix_TDS3000,
    VisaTransport,
    WaveForm,
    save_waveforms_csv,
)

CAPABILITY_ALIASES = {
    "ni": NI_VISA,
    "py": PYVISA_PY,
    "libre": LIBRE_VISA,
}

RESOLUTION_ALIASES = {
    "high": Resolution.HIGH,
    "hi": Resolution.HIGH,
    "low": Resolution.LOW,
    "lo": Resolution.LOW,
}

ENCODING_ALIASES = {
    "binary": CurveEncoding.BINARY,
    "bin": CurveEncoding.BINARY,
    "ascii": CurveEncoding.ASCII,
}


class ScopeRepl(cmd.Cmd):
    intro = "TDS3000 REPL. Type 'help' for commands."
    prompt = "tds> "

    def __init__(self, resource_name: Optional[str] = None, mock: bool = False, capabilities=NI_VISA):
        super().__init__()
        self.resource_name = resource_name
        self.mock = mock
        self.capabilities = capabilities
        self.scope: Optional[Tektronix_TDS3000] = None
        self.waveforms: Dict[int, WaveForm] = {}

        if mock or resource_name:
            self.onecmd(f"connect {resource_name or ''}")

    def _parse_args(self, arg):
        try:
            return shlex.split(arg)
        except ValueError as exc:
            ColorPrinter.error(f"Parse error: {exc}")
            return []

    def _parse_options(self, args):
        """Split 'key=value' options from positional arguments."""
        positional, options = [], {}
        for token in args:
            if "=" in token:
                key, value = token.split("=", 1)
                options[key.lower()] = value
            else:
                positional.append(token)
        return positional, options

    def _print_usage(self, lines):
        for line in lines:
            ColorPrinter.cyan(line)

    def _require_scope(self) -> Optional[Tektronix_TDS3000]:
        if self.scope is None:
            ColorPrinter.warning("No scope connected. Use 'connect <resource>' first.")
        return self.scope

    def onecmd(self, line):
        try:
            return super().onecmd(line)
        except ScopeError as exc:
            ColorPrinter.error(f"{type(exc).__name__}: {exc}")
        except Exception as exc:
            ColorPrinter.error(f"Unexpected error: {exc}")
            traceback.print_exc()
        return False

    def emptyline(self):
        pass

    def do_connect(self, arg):
        "connect <resource>: open a VISA session (ignored with --mock)"
        args = self._parse_args(arg)
        if self.scope is not None:
            self.do_disconnect("")

        if self.mock:
            from tds_instruments.mock_instruments import SimulatedTDS3000

            transport = SimulatedTDS3000(capabilities=self.capabilities)
            name = "simulated TDS3000"
        else:
            if args:
                self.resource_name = args[0]
            if not self.resource_name:
                self._print_usage(["connect <resource>", "  - example: connect TCPIP::192.168.1.20::INSTR"])
                return
            transport = VisaTransport(self.resource_name, capabilities=self.capabilities)
            name = self.resource_name

        scope = Tektronix_TDS3000(transport)
        scope.connect()
        self.scope = scope
        ColorPrinter.success(f"Connected to {name}")

    def do_disconnect(self, arg):
        "disconnect: close the session"
        if self.scope is None:
            return
        self.scope.disconnect()
        self.scope = None
        ColorPrinter.info("Disconnected")

    def do_idn(self, arg):
        "idn: query *IDN?"
        scope = self._require_scope()
        if scope:
            ColorPrinter.cyan(scope.transport.query("*IDN?"))

    def do_raw(self, arg):
        "raw <scpi>: send raw SCPI; if it ends with ?, query and print"
        scope = self._require_scope()
        if not scope:
            return
        command = arg.strip()
        if not command:
            self._print_usage(["raw <scpi>", "  - example: raw ACQUIRE:NUMAVG?"])
            return
        if command.endswith("?"):
            ColorPrinter.cyan(scope.transport.query(command))
        else:
            scope.transport.write(command)
            ColorPrinter.success(f"Sent: {command}")

    def do_busy(self, arg):
        "busy: read the busy status once"
        scope = self._require_scope()
        if scope:
            ColorPrinter.cyan(scope.get_busy_status().name)

    def do_wait(self, arg):
        "wait <ms>: poll until the scope is ready or the timeout passes"
        scope = self._require_scope()
        if not scope:
            return
        args = self._parse_args(arg)
        timeout_ms = float(args[0]) if args else scope.TIMEOUT
        status = scope.wait_for_ready(timeout_ms)
        if status is BusyStatus.READY:
            ColorPrinter.success("Ready")
        else:
            ColorPrinter.warning(f"Still busy after {timeout_ms:g} ms")

    def do_reset(self, arg):
        "reset [average_count] [timeout_ms]: reset and configure the scope"
        scope = self._require_scope()
        if not scope:
            return
        args = self._parse_args(arg)
        average_count = int(args[0]) if len(args) > 0 else None
        timeout_ms = int(args[1]) if len(args) > 1 else None
        status = scope.reset(average_count, timeout_ms)
        if status is ResetStatus.SUCCESS:
            ColorPrinter.success("Reset complete")
        elif status is ResetStatus.REBOOTED:
            ColorPrinter.warning("Scope did not recover and was rebooted. Reconnect when it is back.")
            self.scope = None
        else:
            ColorPrinter.warning("Scope still busy after reset")

    def do_acquire(self, arg):
        "acquire <channels> [avg=] [res=high|low] [delay=] [enc=binary|ascii] [width=1|2]"
        scope = self._require_scope()
        if not scope:
            return
        positional, options = self._parse_options(self._parse_args(arg))
        if not positional:
            self._print_usage(
                [
                    "acquire <channels> [avg=<n>] [res=high|low] [delay=<s>] [enc=binary|ascii] [width=1|2]",
                    "  - channels: single channel (1-4) or comma-separated list (1,3)",
                    "  - example: acquire 1 avg=16",
                    "  - example: acquire 1,2 avg=4 res=low delay=1e-3",
                ]
            )
            return

        channels = tuple(int(c) for c in positional[0].split(","))
        resolution = RESOLUTION_ALIASES.get(options.get("res", "high").lower())
        encoding = ENCODING_ALIASES.get(options.get("enc", "binary").lower())
        if resolution is None or encoding is None:
            ColorPrinter.error("res must be high|low and enc must be binary|ascii")
            return
        config = AcquisitionConfig(
            average_count=int(options.get("avg", scope.average_count)),
            resolution=resolution,
            channels=channels,
            encoding=encoding,
            data_width=int(options.get("width", 2)),
        )
        waveforms = [WaveForm() for _ in channels]
        if "delay" in options:
            waveforms[0].trigger_delay = float(options["delay"])

        ColorPrinter.info(f"Acquiring {len(channels)} channel(s), timeout {config.poll_timeout_ms} ms")
        status = scope.acquire(config, waveforms)
        if status is AcquireStatus.STILL_ACQUIRING:
            ColorPrinter.warning("Scope still acquiring (no trigger?). Try again.")
            return
        for channel, waveform in zip(channels, waveforms):
            self.waveforms[channel] = waveform
            self._print_waveform(waveform)

    def _print_waveform(self, waveform: WaveForm):
        ColorPrinter.success(
            f"CH{waveform.channel}: {waveform.data_size} points, "
            f"{waveform.min:.4g} V to {waveform.max:.4g} V"
        )
        ColorPrinter.info(
            f"  dt={waveform.sample_interval:.4g} s  gain={waveform.gain:.4g} V/div  "
            f"trigger_delay={waveform.trigger_delay:.4g} s"
        )

    def do_show(self, arg):
        "show [channel]: print the last acquired waveform(s)"
        args = self._parse_args(arg)
        if not self.waveforms:
            ColorPrinter.warning("Nothing acquired yet.")
            return
        channels = [int(args[0])] if args else sorted(self.waveforms)
        ColorPrinter.header("Acquired waveforms")
        for channel in channels:
            waveform = self.waveforms.get(channel)
            if waveform is None:
                ColorPrinter.warning(f"CH{channel} not acquired.")
                continue
            self._print_waveform(waveform)
            preview = ", ".join(f"{v:.4g}" for v in waveform.samples[:8])
            ColorPrinter.cyan(f"  [{preview}, ...]")

    def do_save(self, arg):
        "save <channels> <filename> [points=<n>]: write acquired waveforms to CSV"
        positional, options = self._parse_options(self._parse_args(arg))
        if len(positional) < 2:
            self._print_usage(
                [
                    "save <channels> <filename> [points=<n>]",
                    "  - example: save 1 ch1_data.csv",
                    "  - example: save 1,2 data.csv points=1000",
                ]
            )
            return
        channels = [int(c) for c in positional[0].split(",")]
        missing = [c for c in channels if c not in self.waveforms]
        if missing:
            names = ", ".join(f"CH{c}" for c in missing)
            ColorPrinter.warning(f"Not acquired yet: {names}")
            return
        max_points = int(options["points"]) if "points" in options else None
        rows = save_waveforms_csv([self.waveforms[c] for c in channels], positional[1], max_points)
        ColorPrinter.success(f"Saved {rows} points from CH{channels} to {positional[1]}")

    def do_exit(self, arg):
        "exit: disconnect and leave"
        self.do_disconnect("")
        return True

    def do_quit(self, arg):
        "quit: disconnect and leave"
        return self.do_exit(arg)

    def do_EOF(self, arg):
        print()
        return self.do_exit(arg)


def main():
    args = sys.argv[1:]

    mock = "--mock" in args
    verbose = "--verbose" in args
    capabilities = NI_VISA
    for flag, caps in CAPABILITY_ALIASES.items():
        if f"--{flag}" in args:
            capabilities = caps
    args = [a for a in args if not a.startswith("--")]

    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    repl = ScopeRepl(resource_name=args[0] if args else None, mock=mock, capabilities=capabilities)
    repl.cmdloop()


if __name__ == "__main__":
    main()
