"""
Digital Downconverter
=====================

The DDC core owns the numerically controlled oscillator.  Every accepted RF
sample presents the current phase to the CORDIC rotator, advances the phase
accumulator by the frequency control word, and multiplies the sample by the
rotator's cosine and sine, giving the in-phase and quadrature pair.
"""
from myhdl import enum, modbv
import numpy as np

from cordic import Cordic
from dsp import ComplexMultiplier, wrap

ddc_states = enum('IDLE', 'ROTATE', 'MULTIPLY')

def fcw_to_freq(fcw, **kwargs):
    sample_rate = kwargs.get('sample_rate', 100e6)
    pa_bitwidth = kwargs.get('phase_accumulator_bitwidth', 24)
    pa_cnt = 2 ** pa_bitwidth
    return fcw * (sample_rate / pa_cnt)

def freq_to_fcw(freq, **kwargs):
    sample_rate = kwargs.get('sample_rate', 100e6)
    pa_bitwidth = kwargs.get('phase_accumulator_bitwidth', 24)
    pa_cnt = 2 ** pa_bitwidth
    fmin = fcw_to_freq(0, **kwargs)
    fmax = fcw_to_freq(pa_cnt - 1, **kwargs)
    if freq < fmin or freq > fmax:
        raise ValueError("Frequency is outside of range %d to %d" % (fmin, fmax))
    return int(round(freq / (sample_rate / pa_cnt))) % pa_cnt

def nco_reference(frequency_word, count, phase_offset=0, **kwargs):
    """The oscillator output the DDC core multiplies its first ``count``
    samples by.

    :param frequency_word: The frequency control word.
    :param count: How many samples.
    :param phase_offset: The 16 bit phase offset.
    :returns: A ``(sine, cosine)`` tuple of numpy arrays.
    """
    ddc = DdcCore(**kwargs)
    sine = np.zeros(count, dtype=np.int32)
    cosine = np.zeros(count, dtype=np.int32)
    for n in range(count):
        angle = ddc.phase_to_angle(ddc.phase, phase_offset)
        sine[n], cosine[n] = ddc.cordic.compute(angle)
        ddc.advance(frequency_word)
    return sine, cosine

class DdcCore(object):
    """NCO, CORDIC rotator and complex multiplier.

    A sample is accepted on ``rf_ready(config)``, rotated, multiplied and
    registered as ``(iq_i, iq_q)`` with ``iq_valid``.  The pair is held until
    the consumer asserts ``iq_ready``; no new sample is accepted meanwhile.

    Status bits: 0 enable, 1 valid, 2 busy, 3 locked.

    :param in_bits: Width of the real RF input.
    :param iq_bits: Width of the I and Q outputs.
    :param phase_bits: Width of the phase accumulator.
    :param angle_bits: How many upper phase bits drive the rotator.
    :param nco_bits: Width of the sine and cosine.
    :param cordic_iterations: CORDIC rotations per sample.
    :param pipelined: Let the multiplier accept every tick.
    """
    def __init__(self, in_bits=16, iq_bits=18, phase_bits=24, angle_bits=16,
            nco_bits=16, cordic_iterations=12, pipelined=False):
        assert phase_bits >= 16 and phase_bits >= angle_bits
        self.in_bits = in_bits
        self.iq_bits = iq_bits
        self.phase_bits = phase_bits
        self.angle_bits = angle_bits
        self.cordic = Cordic(iterations=cordic_iterations,
                angle_bits=angle_bits, out_bits=nco_bits)
        self.multiplier = ComplexMultiplier(a_bits=in_bits, b_bits=nco_bits,
                out_bits=iq_bits, pipelined=pipelined)
        self.latency = 1 + self.cordic.latency + self.multiplier.latency
        self.reset()

    def reset(self):
        self.cordic.reset()
        self.multiplier.reset()
        self.state = ddc_states.IDLE
        self.phase = 0
        self.sample = 0
        self.iq_valid = False
        self.iq_i = 0
        self.iq_q = 0

    def phase_to_angle(self, phase, phase_offset=0):
        """The rotator angle for ``phase``, shifted by the 16 bit offset."""
        offset = int(phase_offset) << (self.phase_bits - 16)
        shifted = modbv(phase + offset, min=0, max=2**self.phase_bits)
        return int(shifted[self.phase_bits:self.phase_bits - self.angle_bits])

    def advance(self, frequency_word):
        self.phase = int(modbv(self.phase + int(frequency_word),
                min=0, max=2**self.phase_bits))

    def rf_ready(self, config):
        return bool(config.enable_ddc) and self.state == ddc_states.IDLE \
                and not self.iq_valid

    def locked(self, config):
        # Liveness only: a tuned oscillator, not a phase lock
        return config.frequency_word != 0

    @property
    def busy(self):
        return self.state != ddc_states.IDLE

    def status(self, config):
        return (int(bool(config.enable_ddc))
                | int(self.iq_valid) << 1
                | int(self.busy) << 2
                | int(self.locked(config)) << 3)

    def tick(self, config, rf_valid=False, rf_value=0, iq_ready=True):
        accept = rf_valid and self.rf_ready(config)
        rotated = self.cordic.valid
        multiplied = self.multiplier.valid

        if self.iq_valid and iq_ready:
            self.iq_valid = False

        start = False
        angle = 0
        if self.state == ddc_states.IDLE:
            if accept:
                self.sample = wrap(rf_value, self.in_bits)
                angle = self.phase_to_angle(self.phase, config.phase_offset)
                self.advance(config.frequency_word)
                start = True
                self.state = ddc_states.ROTATE
        elif self.state == ddc_states.ROTATE:
            if rotated:
                self.state = ddc_states.MULTIPLY
        elif self.state == ddc_states.MULTIPLY:
            if multiplied:
                self.iq_i = self.multiplier.real
                self.iq_q = self.multiplier.imag
                self.iq_valid = True
                self.state = ddc_states.IDLE

        # Consumers first, so each sees its producer's registered outputs
        self.multiplier.tick(in_valid=rotated, a_real=self.sample,
                b_real=self.cordic.cosine, b_imag=self.cordic.sine)
        self.cordic.tick(enable=start, angle=angle)
