"""
FIR Channel Filter
==================

A multiply-accumulate FIR filter with one MAC per tick.  Each accepted sample
is shifted into the delay line and starts a sweep over the taps; the sum is
presented with ``out_valid`` once every tap has been accumulated.

Coefficients are loaded through a :class:`CoefficientTable`, which is written
independently of the data path and only affects sweeps started after the
table is committed.
"""
from myhdl import enum

from dsp import saturate, wrap

fir_states = enum('IDLE', 'MAC', 'HOLD')

def quantize_coefficients(taps, bits=18, frac_bits=16):
    """Quantize floating point taps to the fixed point coefficient format.

    :param taps: A sequence of taps, for example from ``scipy.signal.firwin``.
    :param bits: The coefficient width.
    :param frac_bits: How many of those bits are fraction.
    :returns: A tuple of saturated integers.
    """
    return tuple([saturate(int(round(t * 2**frac_bits)), bits) for t in taps])

class CoefficientTable(object):
    """A double buffered table of signed coefficients.

    :param capacity: The number of taps.
    :param bits: The width of each tap.
    """
    def __init__(self, capacity, bits=18):
        self.capacity = capacity
        self.bits = bits
        self.reset()

    def reset(self):
        self.shadow = [0] * self.capacity
        self.active = (0,) * self.capacity

    def write(self, address, data):
        if not 0 <= address < self.capacity:
            raise ValueError("Coefficient address %d outside of 0 to %d" % (
                address, self.capacity - 1))
        self.shadow[address] = wrap(data, self.bits)

    def commit(self):
        self.active = tuple(self.shadow)

    def load(self, taps):
        """Write ``taps`` from address zero, clear the rest and commit."""
        if len(taps) > self.capacity:
            raise ValueError("%d taps do not fit in %d" % (len(taps), self.capacity))
        for address in range(self.capacity):
            self.write(address, taps[address] if address < len(taps) else 0)
        self.commit()

class FirFilter(object):
    """One channel of the FIR filter.

    With ``N`` active taps the direct form takes ``N`` ticks; the symmetric
    form adds the mirrored samples first and takes ``ceil(N/2)`` ticks.  The
    first MAC happens on the tick the sample is accepted, so ``out_valid``
    is observed ``latency(config)`` ticks after acceptance.

    Status bits: 0 enable, 1 valid, 2 busy.

    :param coefficients: The :class:`CoefficientTable` to read taps from.
    :param in_bits: Width of the input samples.
    :param out_bits: Width of the output samples.
    :param coeff_frac_bits: Fraction bits of the coefficients.
    """
    def __init__(self, coefficients, in_bits=18, out_bits=18, coeff_frac_bits=16):
        self.coefficients = coefficients
        self.capacity = coefficients.capacity
        self.in_bits = in_bits
        self.out_bits = out_bits
        self.coeff_frac_bits = coeff_frac_bits
        self.reset()

    def reset(self):
        self.delay_line = [0] * self.capacity
        self.state = fir_states.IDLE
        self.acc = 0
        self.step = 0
        self._steps = 0
        self._taps = 0
        self._symmetric = False
        self._sweep_coefficients = (0,) * self.capacity
        self.out_valid = False
        self.out_value = 0

    def taps(self, config):
        return min(config.fir_taps or self.capacity, self.capacity)

    def latency(self, config):
        n = self.taps(config)
        if config.fir_symmetric:
            return (n + 1) // 2
        return n

    def data_ready(self, config):
        if not config.enable_fir:
            return self.state == fir_states.IDLE and not self.out_valid
        return self.state == fir_states.IDLE

    @property
    def busy(self):
        return self.state != fir_states.IDLE

    def status(self, config):
        return (int(bool(config.enable_fir))
                | int(self.out_valid) << 1
                | int(self.busy) << 2)

    def _start(self, config, value):
        self.delay_line.insert(0, value)
        self.delay_line.pop()
        self._sweep_coefficients = self.coefficients.active
        self._taps = self.taps(config)
        self._symmetric = bool(config.fir_symmetric)
        self._steps = self.latency(config)
        self.acc = 0
        self.step = 0

    def _mac(self):
        k = self.step
        c = self._sweep_coefficients
        d = self.delay_line
        if self._symmetric:
            j = self._taps - 1 - k
            if j > k:
                self.acc += c[k] * (d[k] + d[j])
            else:
                self.acc += c[k] * d[k]
        else:
            self.acc += c[k] * d[k]
        self.step = k + 1

    def tick(self, config, in_valid=False, in_value=0, out_ready=True):
        accept = in_valid and self.data_ready(config)

        if self.out_valid and out_ready:
            self.out_valid = False

        if self.state == fir_states.IDLE and accept:
            value = wrap(in_value, self.in_bits)
            if not config.enable_fir:
                self.out_value = saturate(value, self.out_bits)
                self.out_valid = True
            else:
                self._start(config, value)
                self.state = fir_states.MAC

        if self.state == fir_states.MAC:
            self._mac()
            if self.step == self._steps:
                self.state = fir_states.HOLD

        if self.state == fir_states.HOLD and not self.out_valid:
            self.out_value = saturate(self.acc >> self.coeff_frac_bits,
                    self.out_bits)
            self.out_valid = True
            self.state = fir_states.IDLE

class DualChannelFir(object):
    """Independent I and Q filters sharing coefficients and one handshake.

    :param capacity: Delay line length and maximum number of taps.
    :param in_bits: Width of the input samples.
    :param out_bits: Width of the output samples.
    :param coeff_bits: Width of the coefficients.
    :param coeff_frac_bits: Fraction bits of the coefficients.
    """
    def __init__(self, capacity=32, in_bits=18, out_bits=18, coeff_bits=18,
            coeff_frac_bits=16):
        self.coefficients = CoefficientTable(capacity, coeff_bits)
        self.channel_i = FirFilter(self.coefficients, in_bits, out_bits,
                coeff_frac_bits)
        self.channel_q = FirFilter(self.coefficients, in_bits, out_bits,
                coeff_frac_bits)

    def reset(self):
        self.coefficients.reset()
        self.channel_i.reset()
        self.channel_q.reset()

    def data_ready(self, config):
        return self.channel_i.data_ready(config) and \
                self.channel_q.data_ready(config)

    def latency(self, config):
        return self.channel_i.latency(config)

    @property
    def out_valid(self):
        return self.channel_i.out_valid and self.channel_q.out_valid

    @property
    def out_i(self):
        return self.channel_i.out_value

    @property
    def out_q(self):
        return self.channel_q.out_value

    @property
    def busy(self):
        return self.channel_i.busy or self.channel_q.busy

    def status(self, config):
        return self.channel_i.status(config)

    def tick(self, config, in_valid=False, in_i=0, in_q=0, out_ready=True):
        self.channel_i.tick(config, in_valid, in_i, out_ready)
        self.channel_q.tick(config, in_valid, in_q, out_ready)
