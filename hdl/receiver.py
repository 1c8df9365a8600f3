"""
Receiver
========

The receiver wires the DSP chain together::

    rf -> DDC core -> FIR (I) || FIR (Q) -> CIC -> polyphase FIR -> out

Every :meth:`Receiver.tick` is one clock edge.  All the valid and ready
values between the stages are sampled before any stage is advanced, so each
stage sees the registered outputs of its neighbours, as it would in a
synchronous design.
"""
import logging
import numpy as np
from myhdl import block, always

from ddc import DdcCore
from decimator import DecimationChain
from fir import DualChannelFir
from rfe import Configuration, validate_configuration, COEFF_BANK_SIZE, \
        RFS_FIREN, RFS_DECIMEN

logger = logging.getLogger(__name__)

receiver_config = dict(
        in_bits=16,
        iq_bits=18,
        out_bits=16,
        phase_bits=24,
        angle_bits=16,
        nco_bits=16,
        cordic_iterations=12,
        pipelined=False,
        fir_capacity=32,
        coeff_bits=18,
        coeff_frac_bits=16,
        cic_stages=3,
        cic_delay=1,
        max_cic_decimation=4,
        decim_taps=32)

class StallError(Exception):
    """Thrown when the receiver stops accepting or producing samples."""
    pass

class Receiver(object):
    """The DDC, channel filter and decimation chain.

    Takes the keyword arguments of ``receiver_config``.
    """
    def __init__(self, **kwargs):
        unknown = set(kwargs) - set(receiver_config)
        if unknown:
            raise TypeError("Unknown receiver options: %s" % ', '.join(sorted(unknown)))
        options = self.options = dict(receiver_config, **kwargs)

        self.ddc = DdcCore(
                in_bits=options['in_bits'],
                iq_bits=options['iq_bits'],
                phase_bits=options['phase_bits'],
                angle_bits=options['angle_bits'],
                nco_bits=options['nco_bits'],
                cordic_iterations=options['cordic_iterations'],
                pipelined=options['pipelined'])
        self.fir = DualChannelFir(
                capacity=options['fir_capacity'],
                in_bits=options['iq_bits'],
                out_bits=options['iq_bits'],
                coeff_bits=options['coeff_bits'],
                coeff_frac_bits=options['coeff_frac_bits'])
        self.decimation = DecimationChain(
                in_bits=options['iq_bits'],
                out_bits=options['out_bits'],
                cic_stages=options['cic_stages'],
                cic_delay=options['cic_delay'],
                max_cic_decimation=options['max_cic_decimation'],
                fir_taps=options['decim_taps'],
                coeff_bits=options['coeff_bits'],
                coeff_frac_bits=options['coeff_frac_bits'])
        self.config = Configuration()

    def reset(self):
        """Clear every register, table and the configuration."""
        logger.debug('reset')
        self.ddc.reset()
        self.fir.reset()
        self.decimation.reset()
        self.config = Configuration()

    def apply_configuration(self, config):
        """Replace the configuration snapshot read by every tick.

        :raises ConfigurationError: If ``config`` would overflow a register.
        """
        validate_configuration(config,
                phase_bits=self.options['phase_bits'],
                fir_capacity=self.options['fir_capacity'])
        self.decimation.check(config)
        logger.debug('configuration %r', config)
        self.config = config

    def configure(self, **fields):
        """Apply the current configuration with ``fields`` replaced."""
        self.apply_configuration(self.config._replace(**fields))

    def write_coefficient(self, address, data):
        """Write one tap.  Address bit 7 selects the decimation filter."""
        if address & COEFF_BANK_SIZE:
            self.decimation.polyphase.coefficients.write(
                    address & (COEFF_BANK_SIZE - 1), data)
        else:
            self.fir.coefficients.write(address, data)

    def commit_coefficients(self):
        logger.debug('commit coefficients')
        self.fir.coefficients.commit()
        self.decimation.polyphase.coefficients.commit()

    def load_coefficients(self, channel_taps=None, decimation_taps=None):
        """Load and commit whole tables, clearing the taps past the end."""
        if channel_taps is not None:
            self.fir.coefficients.load(channel_taps)
        if decimation_taps is not None:
            self.decimation.polyphase.coefficients.load(decimation_taps)
        logger.debug('loaded coefficients')

    @property
    def rf_ready(self):
        return self.ddc.rf_ready(self.config)

    @property
    def out_valid(self):
        return self.decimation.out_valid

    @property
    def out_i(self):
        return self.decimation.out_i

    @property
    def out_q(self):
        return self.decimation.out_q

    @property
    def locked(self):
        return self.ddc.locked(self.config)

    @property
    def busy(self):
        """Whether a sample is still anywhere in the chain."""
        decimation = self.decimation
        return (self.ddc.busy or self.ddc.iq_valid
                or self.fir.busy or self.fir.out_valid
                or decimation.cic.out_valid
                or decimation.polyphase.out_valid
                or decimation.output.out_valid)

    @property
    def status(self):
        config = self.config
        return (self.ddc.status(config)
                | self.fir.status(config) << RFS_FIREN
                | self.decimation.status(config) << RFS_DECIMEN)

    def tick(self, rf_valid=False, rf_value=0, out_ready=True, reset=False):
        """Advance the receiver one clock.

        :param rf_valid: An RF sample is offered.
        :param rf_value: The RF sample.
        :param out_ready: The consumer takes the output this tick.
        :param reset: Synchronous reset.
        """
        if reset:
            self.reset()
            return

        config = self.config

        iq_valid, iq_i, iq_q = self.ddc.iq_valid, self.ddc.iq_i, self.ddc.iq_q
        fir_ready = self.fir.data_ready(config)
        fir_valid, fir_i, fir_q = self.fir.out_valid, self.fir.out_i, self.fir.out_q
        decimation_ready = self.decimation.in_ready(config)

        self.decimation.tick(config, fir_valid, fir_i, fir_q, out_ready)
        self.fir.tick(config, iq_valid, iq_i, iq_q, decimation_ready)
        self.ddc.tick(config, rf_valid, rf_value, fir_ready)

    def ticks_per_sample(self):
        """A generous bound on the ticks one sample needs to pass through."""
        return self.ddc.latency + self.fir.channel_i.capacity + 8

    def process(self, samples, max_ticks=None):
        """Push ``samples`` through the receiver and collect the output.

        :param samples: A sequence of integer RF samples.
        :param max_ticks: Give up after this many ticks.
        :returns: The ``(i, q)`` output as numpy arrays.
        :raises StallError: If the samples do not get through in time.
        """
        if max_ticks is None:
            max_ticks = (len(samples) + 4) * self.ticks_per_sample()

        out_i = []
        out_q = []
        n = 0
        ticks = 0
        while n < len(samples) or self.busy:
            if ticks >= max_ticks:
                raise StallError("%d of %d samples in after %d ticks" % (
                    n, len(samples), ticks))
            offered = n < len(samples)
            accepted = offered and self.rf_ready
            if self.out_valid:
                out_i.append(self.out_i)
                out_q.append(self.out_q)
            self.tick(rf_valid=offered,
                    rf_value=int(samples[n]) if offered else 0,
                    out_ready=True)
            if accepted:
                n += 1
            ticks += 1

        logger.debug('processed %d samples into %d in %d ticks',
                len(samples), len(out_i), ticks)
        return np.array(out_i, dtype=np.int32), np.array(out_q, dtype=np.int32)

@block
def receiver_block(clearn, clock, rf_in, iq_out, receiver):
    """Drive a :class:`Receiver` from a MyHDL clock.

    A sample is taken when ``rf_in.valid`` and ``rf_in.ready`` are both set
    at the clock edge; the output is offered on ``iq_out`` and taken when
    ``iq_out.ready`` is set.

    :param clearn: The reset signal.
    :param clock: The clock.
    :param rf_in: The incoming signature, real samples on ``i``.
    :param iq_out: The outgoing signature.
    :param receiver: The :class:`Receiver` model.
    :returns: A simulation capable MyHDL instance.
    """
    @always(clock.posedge)
    def step():
        receiver.tick(
                rf_valid=bool(rf_in.valid and rf_in.ready),
                rf_value=int(rf_in.i),
                out_ready=bool(iq_out.ready),
                reset=clearn == clearn.active)
        rf_in.ready.next = receiver.rf_ready
        iq_out.valid.next = receiver.out_valid
        iq_out.i.next = receiver.out_i
        iq_out.q.next = receiver.out_q

    return step
