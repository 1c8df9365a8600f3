"""
Simulating DSP Flow Graphs
==========================
"""
import unittest

import numpy as np
import matplotlib as mpl
mpl.use('Agg')
from matplotlib.ticker import FuncFormatter
import matplotlib.pyplot as plt
from myhdl import \
        block, Signal, ResetSignal, intbv, \
        instance, delay, StopSimulation

from dsp import *
from receiver import receiver_block

SYSCLK_DURATION = int(1e9 / 100e6)

def figure_discrete_quadrature(title, axes, f_parent, signature, n, i, q):
    percent = float(np.max(i) - np.min(i)) / float(signature.max - signature.min) * 100.0
    t = title + ' (%.2f)' % percent
    y_min = min(np.min(i), np.min(q))
    y_max = max(np.max(i), np.max(q))

    f = f_parent.add_subplot(*axes, title=t)
    plt.axis([n[0], n[-1], y_min, y_max])
    plt.xlabel('Sample')
    plt.ylabel('Magnitude')
    plt.stem(n, i, linefmt='b-', markerfmt='b.', basefmt='b|')
    plt.stem(n, q, linefmt='r-', markerfmt='r.', basefmt='r|')
    return f

def figure_fft_power(title, axes, f_parent, frq, Y):
    f = f_parent.add_subplot(*axes, title=title)
    ax1 = plt.gca()
    ax1.xaxis.set_major_formatter(FuncFormatter(lambda x, pos: ('%.1f')%(x/1e6)))
    plt.xlabel('Freq (MHz)')
    plt.ylabel('Attenuation (dB)')
    power_Y = np.abs(Y)**2
    power_db = -10 * np.log10(power_Y / np.max(power_Y) + 1e-30)
    half = len(frq) // 2
    plt.plot(frq[0:half], power_db[0:half], 'b')
    plt.plot(frq[half+1:], power_db[half+1:], 'b')
    plt.ylim(120, 0)
    return f

class DSPSim(object):
    """Run a simulation with RF going into ``in_sign`` and I/Q coming out of
    ``out_sign``.

    :param in_sign: The input, real samples on ``i``.
    :param out_sign: The output.
    """
    def __init__(self, in_sign, out_sign):
        self.clock = Signal(bool(0))
        self.clearn = ResetSignal(1, 0, isasync=False)
        self.input = in_sign
        self.output = out_sign
        self.results_i = []
        self.results_q = []

    def consume(self):
        if self.output.valid and self.output.ready:
            self.results_i.append(int(self.output.i))
            self.results_q.append(int(self.output.q))

    def cycle(self):
        self.clock.next = 1
        yield delay(SYSCLK_DURATION // 2)
        self.clock.next = 0
        self.consume()
        yield delay(SYSCLK_DURATION // 2)

    def delay(self, count):
        for i in range(count):
            yield self.cycle()

    def produce(self, sample):
        """Offer ``sample`` until the edge it is taken on."""
        self.input.i.next = sample
        self.input.valid.next = True
        accepted = False
        while not accepted:
            accepted = bool(self.input.ready)
            yield self.cycle()
        self.input.valid.next = False

    def simulate(self, samples, receiver, **kwargs):
        """Actually run the simulation.

        :param samples: The integer RF samples.
        :param receiver: The :class:`receiver.Receiver` to drive.
        :param loader: Called with the receiver after reset, to configure it.
        :returns: The valid i and q sequences as a tuple.
        """
        loader = kwargs.get('loader', None)

        @block
        def testbench():
            dut = receiver_block(self.clearn, self.clock, self.input,
                    self.output, receiver)

            @instance
            def stimulus():
                self.output.ready.next = True
                self.clearn.next = self.clearn.active
                yield self.delay(1)
                self.clearn.next = not self.clearn.active
                if loader:
                    loader(receiver)
                yield self.delay(1)

                for sample in samples:
                    yield self.produce(int(sample))

                while receiver.busy or self.output.valid:
                    yield self.delay(1)
                raise StopSimulation

            return dut, stimulus

        tb = testbench()
        tb.run_sim(quiet=1)

        return (np.array(self.results_i, dtype=self.output.numpy_dtype()),
                np.array(self.results_q, dtype=self.output.numpy_dtype()))

class TestSignature(unittest.TestCase):
    def test_bits(self):
        s = Signature("in", SIGNATURE_SIGNED, bits=16)
        assert s.min == -2**15
        assert s.max == 2**15
        assert s.numpy_dtype() == np.int16
        assert len(s.i) == 16

        u = Signature("u", SIGNATURE_UNSIGNED, bits=18)
        assert u.min == 0 and u.max == 2**18
        assert u.numpy_dtype() == np.uint32

    def test_min_max(self):
        s = Signature("in", SIGNATURE_UNSIGNED, min=0, max=1000)
        assert s.bits == 10

    def test_missing_range(self):
        with self.assertRaises(AttributeError):
            Signature("bad", SIGNATURE_SIGNED)

    def test_copy(self):
        s = Signature("in", SIGNATURE_SIGNED, bits=18)
        c = s.copy("out")
        assert c.name == "out" and c.bits == 18
        assert c.valid is not s.valid

    def test_shared_signals(self):
        s = Signature("in", SIGNATURE_SIGNED, bits=18)
        t = Signature("alias", SIGNATURE_SIGNED, bits=18, valid=s.valid, i=s.i)
        assert t.valid is s.valid and t.i is s.i
        assert t.q is not s.q

    def test_too_wide(self):
        with self.assertRaises(AttributeError):
            Signature("wide", SIGNATURE_SIGNED, bits=72).numpy_dtype()

class TestFixedPoint(unittest.TestCase):
    def test_wrap(self):
        assert wrap(2**17, 18) == -2**17
        assert wrap(-2**17 - 1, 18) == 2**17 - 1
        assert wrap(1234, 18) == 1234

    def test_saturate(self):
        assert saturate(2**17, 18) == 2**17 - 1
        assert saturate(-2**20, 18) == -2**17
        assert saturate(-5, 18) == -5

    def test_truncate(self):
        assert truncate(2**17 - 1, 18, 16) == 2**15 - 1
        assert truncate(-2**17, 18, 16) == -2**15
        assert truncate(5, 18, 16) == 1
        # Truncation rounds toward negative infinity
        assert truncate(-1, 18, 16) == -1
        assert truncate(-5, 18, 16) == -2
        assert type(truncate(5, 18, 16)) is int
        assert truncate(1234, 16, 16) == 1234

    def test_to_signed(self):
        assert to_signed(0x3ffff, 18) == -1
        assert to_signed(0x1ffff, 18) == 2**17 - 1
        assert to_signed(0x20000, 18) == -2**17
        assert type(to_signed(0x3ffff, 18)) is int

    def test_complex_multiply(self):
        assert complex_multiply(1, 2, 3, 4) == (3 - 8, 4 + 6)

class TestComplexMultiplier(unittest.TestCase):
    def run_one(self, m, a, cosine, sine):
        m.tick(in_valid=True, a_real=a, b_real=cosine, b_imag=sine)
        ticks = 1
        while not m.valid:
            m.tick()
            ticks += 1
        return ticks, m.real, m.imag

    def test_products(self):
        m = ComplexMultiplier()
        assert m.shift == 13
        for a, cosine, sine in [(1000, 32767, 0), (-32768, 23170, -23170),
                (12345, -32768, 32767), (0, 100, 100)]:
            ticks, real, imag = self.run_one(m, a, cosine, sine)
            assert ticks == m.latency
            assert real == (a * cosine) >> 13
            assert imag == (a * sine) >> 13

    def test_serialized(self):
        m = ComplexMultiplier()
        assert m.ready
        m.tick(in_valid=True, a_real=1, b_real=1)
        assert not m.ready and m.busy
        m.tick(in_valid=True, a_real=2, b_real=2)
        assert not m.ready
        m.tick(in_valid=True, a_real=3, b_real=3)
        assert m.valid
        assert m.ready
        m.tick()
        assert not m.valid

    def test_pipelined(self):
        m = ComplexMultiplier(pipelined=True)
        a = [2**14, -2**14, 2**13, 7 * 2**10, -2**15]
        out = []
        for n in range(len(a) + m.latency):
            assert m.ready
            offered = n < len(a)
            m.tick(in_valid=offered, a_real=a[n] if offered else 0,
                    b_real=2**14, b_imag=-2**14)
            if m.valid:
                out.append((m.real, m.imag))
        assert out == [((v * 2**14) >> 13, (v * -2**14) >> 13) for v in a]

    def test_reset(self):
        m = ComplexMultiplier()
        m.tick(in_valid=True, a_real=5, b_real=5)
        m.reset()
        assert m.ready and not m.busy and not m.valid

if __name__ == '__main__':
    unittest.main()
