"""
Decimation Chain
================

Reduces the sample rate of the filtered I/Q stream in two stages:

1. a CIC decimator, ``stages`` integrators running at the input rate and
   ``stages`` combs running at the decimated rate;
2. a polyphase FIR decimator, which only computes the samples that survive
   its decimation.

Either stage can be bypassed, in which case it forwards its input unchanged at
the input rate.  The result is truncated to the output width by an
:class:`OutputStage`.
"""
import math

from dsp import saturate, truncate, wrap
from fir import CoefficientTable
from rfe import ConfigurationError, RFS_DECIMEN, RFS_CIC_VALID, \
        RFS_POLY_VALID, RFS_OUT_VALID, RFS_CIC_COUNT, RFS_FIR_COUNT

def cic_decim_max_bits(in_len, decim, cic_order, cic_delay):
    """Register width needed for a CIC decimator to never lose the MSB."""
    return int(math.ceil(cic_order * math.log(decim * cic_delay, 2)) + in_len)

def cic_decim_gain(decim, cic_order, cic_delay):
    """Maximum gain in a CIC decimator."""
    return (decim * cic_delay) ** cic_order

def cic_decim_register_width(in_len, max_decim, cic_order, cic_delay):
    """Get the register width of a CIC decimator built for ``max_decim``."""
    return cic_decim_max_bits(in_len, max_decim, cic_order, cic_delay)

class CicDecimator(object):
    """A CIC decimating filter with given order and delay, on I and Q.

    The integrators and combs are modular registers; the comb output is
    exact as long as the register width covers the filter's growth, which
    :meth:`check` enforces.  The output is divided by the filter gain.

    :param in_bits: Width of the input samples, and of the output.
    :param stages: The order of the CIC filter.
    :param differential_delay: The delay of the comb elements.
    :param max_decimation: The largest decimation the registers allow.
    """
    def __init__(self, in_bits=18, stages=3, differential_delay=1,
            max_decimation=4):
        self.in_bits = in_bits
        self.stages = stages
        self.differential_delay = differential_delay
        self.max_decimation = max_decimation
        self.register_bits = cic_decim_register_width(in_bits,
                max_decimation, stages, differential_delay)
        self.reset()

    def reset(self):
        self.integrators_i = [0] * self.stages
        self.integrators_q = [0] * self.stages
        self.combs_i = [[0] * self.differential_delay for n in range(self.stages)]
        self.combs_q = [[0] * self.differential_delay for n in range(self.stages)]
        self.counter = 0
        self.out_valid = False
        self.out_i = 0
        self.out_q = 0

    def ratio(self, config):
        return max(int(config.cic_decimation), 1)

    def check(self, config):
        ratio = self.ratio(config)
        required = cic_decim_max_bits(self.in_bits, ratio, self.stages,
                self.differential_delay)
        if required > self.register_bits:
            raise ConfigurationError(
                "CIC decimation %d needs %d bit registers, built with %d" % (
                ratio, required, self.register_bits))

    def in_ready(self, config):
        return not self.out_valid

    def _integrate(self, integrators, value):
        for n in range(self.stages):
            value = wrap(integrators[n] + value, self.register_bits)
            integrators[n] = value
        return value

    def _comb(self, combs, value):
        for line in combs:
            delayed = line[-1]
            line.insert(0, value)
            line.pop()
            value = wrap(value - delayed, self.register_bits)
        return value

    def _normalize(self, value, ratio):
        gain = cic_decim_gain(ratio, self.stages, self.differential_delay)
        return saturate(value // gain, self.in_bits)

    def tick(self, config, in_valid=False, in_i=0, in_q=0, out_ready=True,
            bypass=False):
        accept = in_valid and self.in_ready(config)

        if self.out_valid and out_ready:
            self.out_valid = False

        if not accept:
            return

        if bypass:
            self.out_i = in_i
            self.out_q = in_q
            self.out_valid = True
            return

        ratio = self.ratio(config)
        i = self._integrate(self.integrators_i, in_i)
        q = self._integrate(self.integrators_q, in_q)
        if self.counter >= ratio - 1:
            self.counter = 0
            self.out_i = self._normalize(self._comb(self.combs_i, i), ratio)
            self.out_q = self._normalize(self._comb(self.combs_q, q), ratio)
            self.out_valid = True
        else:
            self.counter += 1

class PolyphaseFirDecimator(object):
    """A FIR decimator that only computes the retained samples.

    The delay line advances at the input rate.  Every ``fir_decimation``
    samples the weighted sum over all taps is computed, phase by phase, and
    registered.

    :param taps: The delay line length.
    :param in_bits: Width of the input samples.
    :param out_bits: Width of the output samples.
    :param coeff_bits: Width of the coefficients.
    :param coeff_frac_bits: Fraction bits of the coefficients.
    """
    def __init__(self, taps=32, in_bits=18, out_bits=18, coeff_bits=18,
            coeff_frac_bits=16):
        self.taps = taps
        self.in_bits = in_bits
        self.out_bits = out_bits
        self.coeff_frac_bits = coeff_frac_bits
        self.coefficients = CoefficientTable(taps, coeff_bits)
        self.reset()

    def reset(self):
        self.coefficients.reset()
        self.delay_line_i = [0] * self.taps
        self.delay_line_q = [0] * self.taps
        self.counter = 0
        self.out_valid = False
        self.out_i = 0
        self.out_q = 0

    def ratio(self, config):
        return max(int(config.fir_decimation), 1)

    def in_ready(self, config):
        return not self.out_valid

    def _shift(self, delay_line, value):
        delay_line.insert(0, wrap(value, self.in_bits))
        delay_line.pop()

    def _mac(self, delay_line, ratio):
        c = self.coefficients.active
        acc = 0
        for phase in range(ratio):
            acc += sum([a * b for a, b in zip(c[phase::ratio],
                    delay_line[phase::ratio])])
        return saturate(acc >> self.coeff_frac_bits, self.out_bits)

    def tick(self, config, in_valid=False, in_i=0, in_q=0, out_ready=True,
            bypass=False):
        accept = in_valid and self.in_ready(config)

        if self.out_valid and out_ready:
            self.out_valid = False

        if not accept:
            return

        if bypass:
            self.out_i = in_i
            self.out_q = in_q
            self.out_valid = True
            return

        ratio = self.ratio(config)
        self._shift(self.delay_line_i, in_i)
        self._shift(self.delay_line_q, in_q)
        if self.counter >= ratio - 1:
            self.counter = 0
            self.out_i = self._mac(self.delay_line_i, ratio)
            self.out_q = self._mac(self.delay_line_q, ratio)
            self.out_valid = True
        else:
            self.counter += 1

class OutputStage(object):
    """Truncates ``in_bits`` to ``out_bits`` and holds the result until it
    is accepted."""
    def __init__(self, in_bits=18, out_bits=16):
        assert in_bits >= out_bits
        self.in_bits = in_bits
        self.out_bits = out_bits
        self.reset()

    def reset(self):
        self.out_valid = False
        self.out_i = 0
        self.out_q = 0

    def in_ready(self):
        return not self.out_valid

    def tick(self, in_valid=False, in_i=0, in_q=0, out_ready=True):
        accept = in_valid and self.in_ready()

        if self.out_valid and out_ready:
            self.out_valid = False

        if accept:
            self.out_i = truncate(saturate(in_i, self.in_bits),
                    self.in_bits, self.out_bits)
            self.out_q = truncate(saturate(in_q, self.in_bits),
                    self.in_bits, self.out_bits)
            self.out_valid = True

class DecimationChain(object):
    """CIC decimator, polyphase FIR decimator and output stage in cascade.

    Status bits: 0 enable, 1 CIC valid, 2 polyphase valid, 3 output valid,
    [15:8] CIC counter, [23:16] polyphase counter.

    :param in_bits: Width of the input samples.
    :param out_bits: Width of the output samples.
    :param cic_stages: The order of the CIC filter.
    :param cic_delay: The delay of the CIC comb elements.
    :param max_cic_decimation: The largest CIC decimation supported.
    :param fir_taps: The polyphase delay line length.
    :param coeff_bits: Width of the polyphase coefficients.
    :param coeff_frac_bits: Fraction bits of the polyphase coefficients.
    """
    def __init__(self, in_bits=18, out_bits=16, cic_stages=3, cic_delay=1,
            max_cic_decimation=4, fir_taps=32, coeff_bits=18,
            coeff_frac_bits=16):
        self.cic = CicDecimator(in_bits, cic_stages, cic_delay,
                max_cic_decimation)
        self.polyphase = PolyphaseFirDecimator(fir_taps, in_bits, in_bits,
                coeff_bits, coeff_frac_bits)
        self.output = OutputStage(in_bits, out_bits)

    def reset(self):
        self.cic.reset()
        self.polyphase.reset()
        self.output.reset()

    def check(self, config):
        self.cic.check(config)

    def in_ready(self, config):
        return self.cic.in_ready(config)

    @property
    def out_valid(self):
        return self.output.out_valid

    @property
    def out_i(self):
        return self.output.out_i

    @property
    def out_q(self):
        return self.output.out_q

    def status(self, config):
        """Status register bits ``RFS_DECIMEN`` and up, shifted down to 0."""
        return (int(bool(config.enable_decimation))
                | int(self.cic.out_valid) << (RFS_CIC_VALID - RFS_DECIMEN)
                | int(self.polyphase.out_valid) << (RFS_POLY_VALID - RFS_DECIMEN)
                | int(self.output.out_valid) << (RFS_OUT_VALID - RFS_DECIMEN)
                | (self.cic.counter & 0xff) << (RFS_CIC_COUNT - RFS_DECIMEN)
                | (self.polyphase.counter & 0xff) << (RFS_FIR_COUNT - RFS_DECIMEN))

    def tick(self, config, in_valid=False, in_i=0, in_q=0, out_ready=True):
        enabled = bool(config.enable_decimation)
        bypass_cic = bool(config.bypass_cic) or not enabled
        bypass_fir = bool(config.bypass_fir) or not enabled

        cic_valid = self.cic.out_valid
        cic_i, cic_q = self.cic.out_i, self.cic.out_q
        polyphase_ready = self.polyphase.in_ready(config)
        polyphase_valid = self.polyphase.out_valid
        polyphase_i, polyphase_q = self.polyphase.out_i, self.polyphase.out_q
        output_ready = self.output.in_ready()

        self.output.tick(polyphase_valid, polyphase_i, polyphase_q, out_ready)
        self.polyphase.tick(config, cic_valid, cic_i, cic_q, output_ready,
                bypass_fir)
        self.cic.tick(config, in_valid, in_i, in_q, polyphase_ready, bypass_cic)
