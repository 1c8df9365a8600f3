"""
Radio Front End Control Plane
*****************************

The control plane owns the register file that configures the receiver.  Every
register write produces a new immutable :class:`Configuration` snapshot and
hands it to the receiver, which reads it on every tick.  Coefficient writes go
through an address register, a data register whose write is the write enable
pulse, and a commit register whose write publishes the new tables.
"""
import logging
from collections import namedtuple

from dsp import to_signed

logger = logging.getLogger(__name__)

RFE_REGISTER_FILE = dict(
    RF_CONTROL_ADDR      = 0x00,
    RF_FCW_ADDR          = 0x04,
    RF_PHASE_ADDR        = 0x08,
    RF_DECIM_ADDR        = 0x0c,
    RF_FIR_TAPS_ADDR     = 0x10,
    RF_COEFF_ADDR_ADDR   = 0x14,
    RF_COEFF_DATA_ADDR   = 0x18,
    RF_COEFF_COMMIT_ADDR = 0x1c,
    RF_STATUS_ADDR       = 0x20,
)
"""Peripheral register file addresses."""
for name, addr in RFE_REGISTER_FILE.items():
    globals()[name] = addr

RFE_CONTROL_REGISTER = dict(
    RFC_DDCEN      = 0,
    RFC_FIREN      = 1,
    RFC_DECIMEN    = 2,
    RFC_BYPASS_CIC = 3,
    RFC_BYPASS_FIR = 4,
    RFC_SYMMETRIC  = 5,
)
"""Control register bit flags."""
for name, bit in RFE_CONTROL_REGISTER.items():
    globals()[name] = bit

RFE_STATUS_REGISTER = dict(
    # BYTE 0 - DDC AND FIR FLAGS
    RFS_DDCEN       = 0,
    RFS_DDC_VALID   = 1,
    RFS_DDC_BUSY    = 2,
    RFS_LOCKED      = 3,
    RFS_FIREN       = 4,
    RFS_FIR_VALID   = 5,
    RFS_FIR_BUSY    = 6,
    RFS_DECIMEN     = 7,

    # BYTE 1 - DECIMATION FLAGS
    RFS_CIC_VALID   = 8,
    RFS_POLY_VALID  = 9,
    RFS_OUT_VALID   = 10,
    # 11 - 15 reserved

    # BYTE 2 - CIC DECIMATION COUNTER
    RFS_CIC_COUNT   = 16,

    # BYTE 3 - FIR DECIMATION COUNTER
    RFS_FIR_COUNT   = 24,
)
"""Peripheral status register bit flags."""
for name, bit in RFE_STATUS_REGISTER.items():
    globals()[name] = bit

COEFF_BITS = 18
COEFF_BANK_SIZE = 0x80

CONFIGURATION_FIELDS = dict(
    frequency_word    = 32,
    phase_offset      = 16,
    cic_decimation    = 8,
    fir_decimation    = 8,
    fir_taps          = 8,
    bypass_cic        = 1,
    bypass_fir        = 1,
    fir_symmetric     = 1,
    enable_ddc        = 1,
    enable_fir        = 1,
    enable_decimation = 1,
)
"""Configuration fields and their register widths."""

Configuration = namedtuple('Configuration', [
    'frequency_word', 'phase_offset',
    'cic_decimation', 'fir_decimation', 'fir_taps',
    'bypass_cic', 'bypass_fir', 'fir_symmetric',
    'enable_ddc', 'enable_fir', 'enable_decimation',
], defaults=(0, 0, 0, 0, 0, False, False, False, False, False, False))
Configuration.__doc__ = """A snapshot of the receiver configuration.

The all zero snapshot is the reset state: everything disabled, no
decimation, and the full filter length."""

class ConfigurationError(ValueError):
    """Raised when a configuration would overflow the receiver."""
    pass

class RegisterError(Exception):
    """Raised on an access to an unknown or read only register."""
    pass

def validate_configuration(config, **limits):
    """Check every field of ``config`` fits its register.

    :param config: The :class:`Configuration` to check.
    :param phase_bits: The width of the phase accumulator.
    :param fir_capacity: The most taps the channel filter has.
    :raises ConfigurationError: If a field is out of range.
    """
    for field, bits in CONFIGURATION_FIELDS.items():
        value = int(getattr(config, field))
        if not 0 <= value < 2**bits:
            raise ConfigurationError("%s=%d does not fit in %d bits" % (
                field, value, bits))

    phase_bits = limits.get('phase_bits')
    if phase_bits is not None and config.frequency_word >= 2**phase_bits:
        raise ConfigurationError("frequency_word=%d does not fit the %d bit "
            "phase accumulator" % (config.frequency_word, phase_bits))

    fir_capacity = limits.get('fir_capacity')
    if fir_capacity is not None and config.fir_taps > fir_capacity:
        raise ConfigurationError("fir_taps=%d, the filter has %d" % (
            config.fir_taps, fir_capacity))

def control_word(config):
    """Pack the flags of ``config`` into the control register."""
    return (int(bool(config.enable_ddc)) << RFC_DDCEN
            | int(bool(config.enable_fir)) << RFC_FIREN
            | int(bool(config.enable_decimation)) << RFC_DECIMEN
            | int(bool(config.bypass_cic)) << RFC_BYPASS_CIC
            | int(bool(config.bypass_fir)) << RFC_BYPASS_FIR
            | int(bool(config.fir_symmetric)) << RFC_SYMMETRIC)

class ControlPlane(object):
    """The register file in front of a receiver.

    :param receiver: Anything with ``config``, ``status``, ``reset``,
        ``apply_configuration``, ``write_coefficient`` and
        ``commit_coefficients``.
    """
    def __init__(self, receiver):
        self.receiver = receiver
        self.coeff_address = 0

    def reset(self):
        """Peripheral reset: the receiver and the coefficient address."""
        self.receiver.reset()
        self.coeff_address = 0

    def write(self, addr, data):
        """Write ``data`` to the register at ``addr``.

        :raises RegisterError: For unknown or read only registers.
        """
        logger.debug('write addr=%s data=%s', hex(addr), hex(data))
        config = self.receiver.config

        if addr == RF_CONTROL_ADDR:
            config = config._replace(
                enable_ddc=bool(data & (1 << RFC_DDCEN)),
                enable_fir=bool(data & (1 << RFC_FIREN)),
                enable_decimation=bool(data & (1 << RFC_DECIMEN)),
                bypass_cic=bool(data & (1 << RFC_BYPASS_CIC)),
                bypass_fir=bool(data & (1 << RFC_BYPASS_FIR)),
                fir_symmetric=bool(data & (1 << RFC_SYMMETRIC)))
        elif addr == RF_FCW_ADDR:
            config = config._replace(frequency_word=data & 0xffffffff)
        elif addr == RF_PHASE_ADDR:
            config = config._replace(phase_offset=data & 0xffff)
        elif addr == RF_DECIM_ADDR:
            config = config._replace(cic_decimation=data & 0xff,
                fir_decimation=(data >> 8) & 0xff)
        elif addr == RF_FIR_TAPS_ADDR:
            config = config._replace(fir_taps=data & 0xff)
        elif addr == RF_COEFF_ADDR_ADDR:
            self.coeff_address = data & 0xff
            return
        elif addr == RF_COEFF_DATA_ADDR:
            self.receiver.write_coefficient(self.coeff_address,
                    to_signed(data, COEFF_BITS))
            self.coeff_address = (self.coeff_address + 1) & 0xff
            return
        elif addr == RF_COEFF_COMMIT_ADDR:
            self.receiver.commit_coefficients()
            return
        elif addr == RF_STATUS_ADDR:
            raise RegisterError("Status register is read only")
        else:
            raise RegisterError("No register at %s" % hex(addr))

        self.receiver.apply_configuration(config)

    def read(self, addr):
        """Read the register at ``addr``.

        The coefficient data and commit registers are write only and read
        as zero.

        :raises RegisterError: For unknown registers.
        """
        config = self.receiver.config
        if addr == RF_CONTROL_ADDR:
            data = control_word(config)
        elif addr == RF_FCW_ADDR:
            data = config.frequency_word
        elif addr == RF_PHASE_ADDR:
            data = config.phase_offset
        elif addr == RF_DECIM_ADDR:
            data = config.cic_decimation | config.fir_decimation << 8
        elif addr == RF_FIR_TAPS_ADDR:
            data = config.fir_taps
        elif addr == RF_COEFF_ADDR_ADDR:
            data = self.coeff_address
        elif addr in (RF_COEFF_DATA_ADDR, RF_COEFF_COMMIT_ADDR):
            data = 0
        elif addr == RF_STATUS_ADDR:
            data = self.receiver.status
        else:
            raise RegisterError("No register at %s" % hex(addr))
        logger.debug('read addr=%s data=%s', hex(addr), hex(data))
        return data

    def load_coefficients(self, taps, bank=0):
        """Write ``taps`` into a coefficient bank and commit them. Taps past
        the end of ``taps`` keep their shadow values.

        :param taps: Signed integer taps.
        :param bank: 0 for the channel filter, 1 for the decimation filter.
        """
        self.write(RF_COEFF_ADDR_ADDR, bank * COEFF_BANK_SIZE)
        for tap in taps:
            self.write(RF_COEFF_DATA_ADDR, int(tap) & (2**COEFF_BITS - 1))
        self.write(RF_COEFF_COMMIT_ADDR, 1)
