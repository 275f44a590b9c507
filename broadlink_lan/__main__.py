#!/usr/bin/env python3

# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

import sys
import argparse
import json
import getpass
import asyncio
import logging
from signal import SIGINT, SIGTERM

from broadlink_lan.internal_types import *

from broadlink_lan import (
    __version__ as pkg_version,
    Device,
    DEFAULT_TIMEOUT,
    DISCOVERY_PORT,
    WifiSecurityMode,
    create,
    discover,
    format_mac,
    parse_mac,
    setup,
  )
from broadlink_lan.passphrase import KeyringPassphrase, DEFAULT_KEYRING_SERVICE

class CmdExitError(RuntimeError):
    exit_code: int

    def __init__(self, exit_code: int, msg: Optional[str]=None):
        if msg is None:
            msg = f"Command exited with return code {exit_code}"
        super().__init__(msg)
        self.exit_code = exit_code

class ArgparseExitError(CmdExitError):
    pass

class NoExitArgumentParser(argparse.ArgumentParser):
    def exit(self, status=0, message=None):
        if message:
            self._print_message(message, sys.stderr)
        raise ArgparseExitError(status, message)

def device_summary(device: Device) -> JsonableDict:
    return {
        "host": device.host[0],
        "port": device.host[1],
        "mac": format_mac(device.mac),
        "devtype": f"0x{device.devtype:04x}",
        "type": device.device_type.name,
        "model": device.model,
      }

class CommandHandler:
    _argv: Optional[Sequence[str]]
    _parser: argparse.ArgumentParser
    _args: argparse.Namespace
    _provide_traceback: bool = True

    def __init__(self, argv: Optional[Sequence[str]]=None):
        self._argv = argv

    async def cmd_bare(self) -> int:
        print("A command is required", file=sys.stderr)
        return 1

    def _get_wifi_password(self) -> str:
        password: Optional[str] = self._args.password
        if not password is None:
            return password
        keyring_key: Optional[str] = self._args.keyring_key
        if keyring_key is None:
            keyring_key = self._args.ssid
        return KeyringPassphrase(keyring_key, service=self._args.keyring_service).get_passphrase()

    async def cmd_discover(self) -> int:
        timeout: float = self._args.timeout
        local_ip: Optional[str] = self._args.local_ip
        do_auth: bool = self._args.auth
        # discovery without a timeout ignores cancellation; leave SIGINT/SIGTERM at their defaults
        handle_signals = timeout > 0 and not self._provide_traceback
        cancel: Optional[asyncio.Event] = asyncio.Event() if timeout > 0 else None
        loop = asyncio.get_running_loop()
        if handle_signals:
            assert not cancel is None
            for signal in (SIGINT, SIGTERM):
                loop.add_signal_handler(signal, cancel.set)
        try:
            devices = await discover(timeout=timeout, local_ip_address=local_ip, cancel=cancel)
        finally:
            if handle_signals:
                for signal in (SIGINT, SIGTERM):
                    loop.remove_signal_handler(signal)
        for device in devices:
            async with device:
                summary = device_summary(device)
                if do_auth:
                    summary["authenticated"] = await device.auth()
                print(json.dumps(summary, indent=2, sort_keys=True))
                sys.stdout.flush()
        return 0

    async def cmd_auth(self) -> int:
        mac = parse_mac(self._args.mac)
        devtype = int(self._args.devtype, 0)
        async with create(devtype, mac, (self._args.host, self._args.port)) as device:
            device.timeout = self._args.timeout
            if not await device.auth():
                raise CmdExitError(1, f"Authentication with {device} failed")
            summary = device_summary(device)
            summary["id"] = device.id.hex()
            summary["key"] = device.key.hex()
            print(json.dumps(summary, indent=2, sort_keys=True))
        return 0

    async def cmd_setup(self) -> int:
        ssid: str = self._args.ssid
        security_mode = WifiSecurityMode[self._args.security_mode.upper()]
        password = self._get_wifi_password()
        await setup(ssid, password, security_mode)
        print(f"Sent Wi-Fi setup for '{ssid}'")
        return 0

    async def cmd_set_password(self) -> int:
        ssid: str = self._args.ssid
        keyring_key: str = ssid if self._args.keyring_key is None else self._args.keyring_key
        password = getpass.getpass(f"Wi-Fi password for '{ssid}': ")
        KeyringPassphrase(keyring_key, service=self._args.keyring_service).set_passphrase(password)
        return 0

    async def cmd_version(self) -> int:
        print(pkg_version)
        return 0

    def build_parser(self) -> argparse.ArgumentParser:
        parser = NoExitArgumentParser(description="Discover, authenticate and set up Broadlink devices on the local network.")

        # ======================= Main command

        parser.add_argument('--traceback', "--tb", action='store_true', default=False,
                            help='Display detailed exception information')
        parser.add_argument('--log-level', dest='log_level', default='warning',
                            choices=['debug', 'info', 'warning', 'error', 'critical'],
                            help='''The logging level to use. Default: warning''')
        parser.set_defaults(func=self.cmd_bare)

        subparsers = parser.add_subparsers(
                            title='Commands',
                            description='Valid commands',
                            help='Additional help available with "<command-name> -h"')

        # ======================= discover

        parser_discover = subparsers.add_parser('discover', description="Discover devices on the local network")
        parser_discover.add_argument('--timeout', type=float, default=0,
                            help='''Listen for this many seconds and report every device. Default: 0 (stop at the first device, or after 10 seconds)''')
        parser_discover.add_argument('--local-ip', dest='local_ip', default=None,
                            help='''The local IPv4 address to advertise in the request. Default: 0.0.0.0''')
        parser_discover.add_argument('--auth', action='store_true', default=False,
                            help='Authenticate with each discovered device')
        parser_discover.set_defaults(func=self.cmd_discover)

        # ======================= auth

        parser_auth = subparsers.add_parser('auth', description="Authenticate with a device and display its session key")
        parser_auth.add_argument('--host', required=True,
                            help='''The IP address of the device''')
        parser_auth.add_argument('--port', type=int, default=DISCOVERY_PORT,
                            help=f'''The UDP port of the device. Default: {DISCOVERY_PORT}''')
        parser_auth.add_argument('--mac', required=True,
                            help='''The MAC address of the device, e.g. 34:ea:34:00:11:22''')
        parser_auth.add_argument('--devtype', default='0x2712',
                            help='''The device type code. Default: 0x2712''')
        parser_auth.add_argument('--timeout', type=float, default=DEFAULT_TIMEOUT,
                            help=f'''Seconds to wait for the device to answer. Default: {DEFAULT_TIMEOUT}''')
        parser_auth.set_defaults(func=self.cmd_auth)

        # ======================= setup

        parser_setup = subparsers.add_parser('setup', description="Broadcast Wi-Fi credentials to devices in setup mode")
        parser_setup.add_argument('--ssid', required=True,
                            help='''The SSID of the network to join''')
        parser_setup.add_argument('--password', default=None,
                            help='''The Wi-Fi password. Default: read from the keyring''')
        parser_setup.add_argument('--security-mode', dest='security_mode', default='wpa2',
                            choices=[m.name.lower() for m in WifiSecurityMode],
                            help='''The Wi-Fi security mode. Default: wpa2''')
        parser_setup.add_argument('--keyring-service', dest='keyring_service', default=DEFAULT_KEYRING_SERVICE,
                            help=f'''The keyring service holding the password. Default: {DEFAULT_KEYRING_SERVICE}''')
        parser_setup.add_argument('--keyring-key', dest='keyring_key', default=None,
                            help='''The keyring key holding the password. Default: the SSID''')
        parser_setup.set_defaults(func=self.cmd_setup)

        # ======================= set-password

        parser_set_password = subparsers.add_parser('set-password', description="Store a Wi-Fi password in the keyring for later use by setup")
        parser_set_password.add_argument('--ssid', required=True,
                            help='''The SSID the password belongs to''')
        parser_set_password.add_argument('--keyring-service', dest='keyring_service', default=DEFAULT_KEYRING_SERVICE,
                            help=f'''The keyring service to store the password under. Default: {DEFAULT_KEYRING_SERVICE}''')
        parser_set_password.add_argument('--keyring-key', dest='keyring_key', default=None,
                            help='''The keyring key to store the password under. Default: the SSID''')
        parser_set_password.set_defaults(func=self.cmd_set_password)

        # ======================= version

        parser_version = subparsers.add_parser('version',
                                description='''Display version information.''')
        parser_version.set_defaults(func=self.cmd_version)

        return parser

    async def arun(self) -> int:
        """Run the broadlink-lan command-line tool with provided arguments

        Args:
            argv (Optional[Sequence[str]], optional):
                A list of commandline arguments (NOT including the program as argv[0]!),
                or None to use sys.argv[1:]. Defaults to None.

        Returns:
            int: The exit code that would be returned if this were run as a standalone command.
        """
        parser = self.build_parser()
        self._parser = parser

        try:
            args = parser.parse_args(self._argv)
        except ArgparseExitError as ex:
            return ex.exit_code
        traceback: bool = args.traceback
        self._provide_traceback = traceback

        try:
            logging.basicConfig(
                level=logging.getLevelName(args.log_level.upper()),
            )
            self._args = args
            func: Callable[[], Awaitable[int]] = args.func
            logging.debug(f"Running command {func.__name__}, tb = {traceback}")
            rc = await func()
            logging.debug(f"Command {func.__name__} returned {rc}")
        except Exception as ex:
            if isinstance(ex, CmdExitError):
                rc = ex.exit_code
            else:
                rc = 1
            if rc != 0:
                if traceback:
                    raise
            print(f"broadlink-lan: error: {ex}", file=sys.stderr)
        except BaseException as ex:
            print(f"broadlink-lan: Unhandled exception: {ex}", file=sys.stderr)
            raise

        return rc

    def run(self) -> int:
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            rc = loop.run_until_complete(self.arun())
        finally:
            loop.close()
        return rc

def run(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = CommandHandler(argv).run()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

async def arun(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = await CommandHandler(argv).arun()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

# allow running with "python3 -m", or as a standalone script
if __name__ == "__main__":
    sys.exit(run())
