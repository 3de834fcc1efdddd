#!/usr/bin/env python3
"""
bird-lg - BGP looking glass

Usage:
    bird-lg proxy --bird /var/run/bird/bird.ctl --listen 8000
    bird-lg frontend --servers gw1,gw2 --domain example.net --listen 5000
    bird-lg check-config
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import uvicorn

from bird_lg import __version__
from bird_lg.utils.config import LookingGlassConfig, get_config_manager
from bird_lg.utils.error_handling import (ConfigurationError, ErrorFormatter, ErrorSeverity,
                                          ParameterValidator, ValidationError, handle_errors)
from bird_lg.utils.logging import setup_logging

logger = logging.getLogger("bird-lg.main")


def parse_listen(listen: str) -> Tuple[Optional[str], Optional[int], Optional[str]]:
    """
    Split a listen spec into (host, port, unix socket path).

    `8000` listens on all addresses, `127.0.0.1:8000` and `[::1]:8000` on
    one, and an absolute path on a Unix socket.
    """
    listen = listen.strip()
    if listen.startswith("/"):
        return None, None, listen

    host = "0.0.0.0"
    port = listen
    if ":" in listen:
        host, _, port = listen.rpartition(":")
        host = host.strip("[]") or "0.0.0.0"
    try:
        port = ParameterValidator.validate_port(int(port), "listen")
    except (ValueError, ValidationError):
        raise ConfigurationError(f"Invalid listen address: {listen}",
                                 guidance="Use PORT, HOST:PORT or /path/to/socket")
    return host, port, None


def setup_app_logging(config: LookingGlassConfig, verbose: bool = False, quiet: bool = False):
    level = None
    if quiet:
        level = 'WARNING'
    elif verbose:
        level = 'DEBUG'
    setup_logging(config, level=level, console_colors=True)


def load_config(args) -> LookingGlassConfig:
    config = get_config_manager(args.config).get_config()

    proxy = config.proxy
    if getattr(args, 'bird', None):
        proxy.bird_socket = args.bird
    if getattr(args, 'bird6', None):
        proxy.bird6_socket = args.bird6
    if getattr(args, 'allowed', None):
        proxy.allowed_nets = [n.strip() for n in args.allowed.split(',') if n.strip()]
    if getattr(args, 'traceroute_bin', None):
        proxy.traceroute_bin = args.traceroute_bin
    if getattr(args, 'traceroute_flags', None):
        proxy.traceroute_flags = args.traceroute_flags.split()
    if getattr(args, 'traceroute_raw', False):
        proxy.traceroute_raw = True
    if getattr(args, 'traceroute_max_concurrent', None) is not None:
        proxy.traceroute_max_concurrent = ParameterValidator.validate_positive_int(
            args.traceroute_max_concurrent, "traceroute_max_concurrent")

    frontend = config.frontend
    if getattr(args, 'servers', None):
        frontend.servers = [s.strip() for s in args.servers.split(',') if s.strip()]
    if getattr(args, 'domain', None) is not None:
        frontend.domain = args.domain
    if getattr(args, 'proxy_port', None):
        frontend.proxy_port = args.proxy_port
    if getattr(args, 'whois', None):
        frontend.whois_server = args.whois
    if getattr(args, 'dns_interface', None) is not None:
        frontend.dns_interface = args.dns_interface
    if getattr(args, 'timeout', None):
        frontend.timeout = ParameterValidator.validate_timeout(args.timeout)

    if getattr(args, 'listen', None):
        if args.command == 'proxy':
            proxy.listen = args.listen
        else:
            frontend.listen = args.listen
    return config


def validated(config: LookingGlassConfig) -> LookingGlassConfig:
    issues = get_config_manager().validate_config()
    if issues:
        raise ConfigurationError("Invalid configuration: " + "; ".join(issues),
                                 ErrorSeverity.FATAL)
    return config


def serve(app, listen: str):
    host, port, uds = parse_listen(listen)
    if uds:
        logger.info(f"Listening on Unix socket {uds}")
        uvicorn.run(app, uds=uds, log_config=None)
    else:
        logger.info(f"Listening on {host}:{port}")
        uvicorn.run(app, host=host, port=port, log_config=None)


@handle_errors('bird-lg.proxy')
def cmd_proxy(args):
    """Run the proxy agent next to a BIRD router"""
    config = validated(load_config(args))
    setup_app_logging(config, args.verbose, args.quiet)

    from lgweb.proxy_app import create_app
    app = create_app(config)
    try:
        serve(app, config.proxy.listen)
    finally:
        app.state.gate.close()
    return 0


@handle_errors('bird-lg.frontend')
def cmd_frontend(args):
    """Run the frontend JSON API"""
    config = validated(load_config(args))
    setup_app_logging(config, args.verbose, args.quiet)

    if not config.frontend.servers:
        raise ConfigurationError("No servers configured",
                                 guidance="Pass --servers or set BIRDLG_SERVERS")

    from lgweb.frontend_app import create_app
    serve(create_app(config), config.frontend.listen)
    return 0


@handle_errors('bird-lg.check-config')
def cmd_check_config(args):
    """Validate the effective configuration and report problems"""
    load_config(args)
    issues = get_config_manager().validate_config()
    if not issues:
        print(ErrorFormatter.format_message("Configuration is valid", ErrorSeverity.INFO))
        return 0
    for issue in issues:
        print(ErrorFormatter.format_message(issue, ErrorSeverity.ERROR))
    return 1


def create_parser():
    parent = argparse.ArgumentParser(add_help=False)
    verbosity = parent.add_mutually_exclusive_group()
    verbosity.add_argument('-v', '--verbose', action='store_true',
                           help='Enable verbose logging')
    verbosity.add_argument('-q', '--quiet', action='store_true',
                           help='Quiet mode (warnings only)')
    parent.add_argument('--config', type=Path,
                        help='Configuration file (JSON)')

    parser = argparse.ArgumentParser(
        prog='bird-lg',
        description='BGP looking glass for BIRD routers',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
        parents=[parent],
    )
    parser.add_argument('--version', action='version', version=f'bird-lg {__version__}')
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    proxy = subparsers.add_parser('proxy', help='Run the per-router proxy agent',
                                  parents=[parent])
    proxy.add_argument('--bird', help='BIRD control socket (default /var/run/bird/bird.ctl)')
    proxy.add_argument('--bird6', help='Separate BIRD 1.x IPv6 control socket')
    proxy.add_argument('--listen', help='TCP port, HOST:PORT or Unix socket path')
    proxy.add_argument('--allowed', help='IPs or networks allowed to access this proxy, comma separated')
    proxy.add_argument('--traceroute-bin', help='Traceroute binary')
    proxy.add_argument('--traceroute-flags', help='Traceroute flags, space separated')
    proxy.add_argument('--traceroute-raw', action='store_true',
                       help='Return traceroute output unprocessed')
    proxy.add_argument('--traceroute-max-concurrent', type=int,
                       help='Maximum traceroutes running at once')

    frontend = subparsers.add_parser('frontend', help='Run the frontend JSON API',
                                     parents=[parent])
    frontend.add_argument('--servers', help='Server list, comma separated (Display<host> allowed)')
    frontend.add_argument('--domain', help='Domain suffix appended to short server names')
    frontend.add_argument('--listen', help='TCP port, HOST:PORT or Unix socket path')
    frontend.add_argument('--proxy-port', type=int, help='Port the proxies listen on')
    frontend.add_argument('--whois', help='Whois server')
    frontend.add_argument('--dns-interface', help='DNS zone for ASN lookups (empty uses whois)')
    frontend.add_argument('--timeout', type=float, help='Per-request timeout in seconds')

    subparsers.add_parser('check-config', help='Validate configuration', parents=[parent])
    return parser


def main():
    """Main entry point"""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        'proxy': cmd_proxy,
        'frontend': cmd_frontend,
        'check-config': cmd_check_config,
    }
    return commands[args.command](args)


if __name__ == '__main__':
    sys.exit(main())
