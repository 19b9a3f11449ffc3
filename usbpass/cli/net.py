"""CLI commands for inspecting the client network allow-list."""

from __future__ import annotations

import scriptconfig as scfg

from ..access import is_allowed
from ..netpolicy import resolve_allowed_networks
from ._common import _BaseCommand, _load_cfg, _make_enumerator


class NetAllowedCLI(_BaseCommand):
    """Print the resolved allowed networks, optionally testing one address."""

    check = scfg.Value(
        '',
        help='Client address (ip or ip:port) to test against the allow-list.',
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        allowed = resolve_allowed_networks(cfg, _make_enumerator(cfg))
        print(f'Allowed networks ({allowed.source})')
        for cidr in allowed.cidrs:
            print(f'  - {cidr}')
        if args.check:
            ok = is_allowed(str(args.check), allowed)
            print(f'{"✅" if ok else "❌"} {args.check} {"allowed" if ok else "rejected"}')
            return 0 if ok else 1
        return 0


class NetModalCLI(scfg.ModalCLI):
    """Network access policy subcommands."""

    allowed = NetAllowedCLI
