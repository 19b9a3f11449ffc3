"""Live attach/detach of a host USB device to a running libvirt VM."""

from __future__ import annotations

import contextlib
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator

from loguru import logger

from .descriptor import encode_identity
from .errors import OperationFailed, USBPassError, VMNotRunning
from .models import DeviceIdentity, validate_vm_name
from .util import run_cmd

log = logger


class Operation(str, Enum):
    ATTACH = 'attach'
    DETACH = 'detach'

    @property
    def virsh_verb(self) -> str:
        return f'{self.value}-device'


class OpState(str, Enum):
    VALIDATING = 'validating'
    ENCODING = 'encoding'
    PERSISTING = 'persisting'
    INVOKING = 'invoking'
    COMPLETED = 'completed'


@dataclass(frozen=True)
class PassthroughResult:
    operation: Operation
    vm_name: str
    identity: DeviceIdentity
    output: str = ''
    state: OpState = OpState.COMPLETED

    @property
    def message(self) -> str:
        prep = 'to' if self.operation is Operation.ATTACH else 'from'
        return (
            f'Device {self.identity.key} {self.operation.value}ed '
            f'{prep} {self.vm_name}'
        )

    def as_dict(self) -> dict:
        return {'success': True, 'message': self.message}


@contextlib.contextmanager
def descriptor_file(xml: str, *, tmp_dir: str | None = None) -> Iterator[Path]:
    """Write ``xml`` to a uniquely named temp file, removed on exit."""
    with tempfile.NamedTemporaryFile(
        'w',
        prefix='usbpass-',
        suffix='.xml',
        dir=tmp_dir,
        delete=False,
        encoding='utf-8',
    ) as f:
        path = Path(f.name)
        try:
            f.write(xml)
        except OSError:
            f.close()
            os.unlink(path)
            raise
    try:
        yield path
    finally:
        path.unlink(missing_ok=True)


class PassthroughOrchestrator:
    """Validates, encodes, and applies one attach/detach per call.

    Holds no state between calls. The running-VM check is a live lookup on
    every call because VMs start and stop between requests.
    """

    def __init__(self, enumerator, *, tmp_dir: str | None = None):
        self.enumerator = enumerator
        self.tmp_dir = tmp_dir

    def attach(self, vm_name: str, vendor_id: str, product_id: str) -> PassthroughResult:
        return self.run(Operation.ATTACH, vm_name, vendor_id, product_id)

    def detach(self, vm_name: str, vendor_id: str, product_id: str) -> PassthroughResult:
        return self.run(Operation.DETACH, vm_name, vendor_id, product_id)

    def run(
        self,
        operation: Operation | str,
        vm_name: str,
        vendor_id: str,
        product_id: str,
    ) -> PassthroughResult:
        operation = Operation(operation)
        state = OpState.VALIDATING
        try:
            validate_vm_name(vm_name)
            ident = DeviceIdentity.parse(vendor_id, product_id)
            log.info(
                '{}: VM={} device={} (from {}:{})',
                operation.value,
                vm_name,
                ident.key,
                vendor_id,
                product_id,
            )
            running = self.enumerator.list_running_vms()
            if vm_name not in running:
                raise VMNotRunning(f'VM {vm_name!r} is not running.')

            state = OpState.ENCODING
            xml = encode_identity(ident)
            log.debug('Descriptor for {}: {}', operation.value, xml)

            state = OpState.PERSISTING
            with descriptor_file(xml, tmp_dir=self.tmp_dir) as path:
                state = OpState.INVOKING
                output = self._invoke(operation, vm_name, ident, path)
        except USBPassError:
            log.warning(
                '{} {}:{} on {} failed while {}',
                operation.value,
                vendor_id,
                product_id,
                vm_name,
                state.value,
            )
            raise
        result = PassthroughResult(operation, vm_name, ident, output)
        log.info(result.message)
        return result

    def _invoke(
        self,
        operation: Operation,
        vm_name: str,
        ident: DeviceIdentity,
        path: Path,
    ) -> str:
        cmd = self.enumerator.virsh(
            operation.virsh_verb, vm_name, str(path), '--live'
        )
        prep = 'to' if operation is Operation.ATTACH else 'from'
        try:
            res = run_cmd(
                cmd,
                sudo=self.enumerator.use_sudo,
                check=False,
                capture=True,
                timeout=self.enumerator.timeout_s,
            )
        except OSError as ex:
            raise OperationFailed(
                f'Failed to {operation.value} device {prep} {vm_name}', str(ex)
            ) from ex
        if res.code != 0:
            log.error(
                'Error {} device {} {} {}: code={} output={}',
                operation.value,
                ident.key,
                prep,
                vm_name,
                res.code,
                res.combined.strip(),
            )
            raise OperationFailed(
                f'Failed to {operation.value} device {prep} {vm_name}',
                res.combined,
            )
        return res.combined
