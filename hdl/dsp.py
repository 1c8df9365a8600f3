import numpy as np
from myhdl import Signal, intbv, modbv

SIGNATURE_SIGNED = True
SIGNATURE_UNSIGNED = False

_NUMPY_TYPES = {
    SIGNATURE_SIGNED: ((16, np.int16), (32, np.int32), (64, np.int64)),
    SIGNATURE_UNSIGNED: ((16, np.uint16), (32, np.uint32), (64, np.uint64)),
}

class Signature(object):
    """The signals of one valid/ready stream edge, with I and Q channels.

    Give either ``bits`` or both ``min`` and ``max``.  Existing signals can be
    passed in to share them between two signatures.

    :param name: Human readable
    :param signed: ``SIGNATURE_SIGNED`` or ``SIGNATURE_UNSIGNED``
    :param bits: Bit precision of each channel
    :param min: The minimum value allowed
    :param max: The maximum value allowed, exclusive
    :param valid: An already existing boolean ``Signal``
    :param ready: An already existing boolean ``Signal``
    :param i: An already existing intbv ``Signal``
    :param q: An already existing intbv ``Signal``
    """
    def __init__(self, name, signed, **kwargs):
        self.name = name
        self.signed = signed

        if 'bits' in kwargs:
            self.bits = kwargs['bits']
            if signed:
                self.min, self.max = signed_range(self.bits)
            else:
                self.min, self.max = 0, 2**self.bits
        elif 'min' in kwargs and 'max' in kwargs:
            self.min = kwargs['min']
            self.max = kwargs['max']
            self.bits = len(self.myhdl(0))
        else:
            raise AttributeError("Must give bits or min & max")

        self.valid = kwargs.get('valid', Signal(bool(0)))
        self.ready = kwargs.get('ready', Signal(bool(0)))
        self.i = kwargs.get('i', Signal(self.myhdl(0)))
        self.q = kwargs.get('q', Signal(self.myhdl(0)))

    def __repr__(self):
        return '<Signature name=%s bits=%d min=%d max=%d>' % (self.name,
                self.bits, self.min, self.max)

    def myhdl(self, default):
        """An ``intbv`` with the range of one channel."""
        return intbv(int(default), min=self.min, max=self.max)

    def numpy_dtype(self):
        """The narrowest numpy integer type that holds one channel."""
        for width, dtype in _NUMPY_TYPES[self.signed]:
            if self.bits <= width:
                return dtype
        raise AttributeError('Too many bits!')

    def copy(self, name):
        return Signature(name, self.signed, bits=self.bits)

def signed_range(bits):
    """The ``(min, max)`` pair of a two's complement register, ``max`` exclusive."""
    return -2**(bits-1), 2**(bits-1)

def wrap(value, bits):
    """Let ``value`` overflow into a signed register of ``bits`` bits."""
    lo, hi = signed_range(bits)
    return int(modbv(int(value), min=lo, max=hi))

def saturate(value, bits):
    """Clamp ``value`` to a signed register of ``bits`` bits."""
    lo, hi = signed_range(bits)
    if value >= hi:
        return hi - 1
    elif value < lo:
        return lo
    return int(value)

def truncate(value, in_bits, out_bits):
    """Keep the ``out_bits`` most significant bits of a ``in_bits`` wide value.

    :param value: A signed integer that fits in ``in_bits``.
    :param in_bits: The width of ``value``.
    :param out_bits: The width of the result.
    :returns: The truncated, signed integer.
    """
    lsb = in_bits - out_bits
    assert lsb >= 0
    lo, hi = signed_range(in_bits)
    return int(intbv(int(value), min=lo, max=hi)[in_bits:lsb].signed())

def to_signed(value, bits):
    """Interpret the low ``bits`` of an unsigned register as two's complement."""
    return int(intbv(int(value))[bits:].signed())

def complex_multiply(a_real, a_imag, b_real, b_imag):
    """Full precision ``a * b`` as a ``(real, imag)`` pair of integers."""
    return (a_real * b_real - a_imag * b_imag,
            a_real * b_imag + a_imag * b_real)

class ComplexMultiplier(object):
    """A three stage complex multiplier.

    Stage one registers the operands, stage two the four partial products and
    stage three the sums, truncated to ``out_bits``.  ``valid`` is a one tick
    pulse, exactly three ticks after the operands were accepted.

    When ``pipelined`` is false only one transaction is in flight at a time
    and ``ready`` drops until it leaves the last stage.

    :param a_bits: Width of the sample operand.
    :param b_bits: Width of the oscillator operand.
    :param out_bits: Width of each output channel.
    :param pipelined: Accept a new operand every tick.
    """
    latency = 3

    def __init__(self, a_bits=16, b_bits=16, out_bits=18, pipelined=False):
        self.a_bits = a_bits
        self.b_bits = b_bits
        self.out_bits = out_bits
        self.pipelined = pipelined
        # The product of two signed numbers has one redundant sign bit
        self.shift = max(a_bits + b_bits - 1 - out_bits, 0)
        self.reset()

    def reset(self):
        self._operands = None
        self._products = None
        self.valid = False
        self.real = 0
        self.imag = 0

    @property
    def ready(self):
        if self.pipelined:
            return True
        return self._operands is None and self._products is None

    @property
    def busy(self):
        return self._operands is not None or self._products is not None

    def tick(self, in_valid=False, a_real=0, b_real=0, b_imag=0, a_imag=0):
        accept = in_valid and self.ready

        if self._products is not None:
            rr, ii, ri, ir = self._products
            self.real = wrap((rr - ii) >> self.shift, self.out_bits)
            self.imag = wrap((ri + ir) >> self.shift, self.out_bits)
            self.valid = True
        else:
            self.valid = False

        if self._operands is not None:
            ar, ai, br, bi = self._operands
            self._products = (ar * br, ai * bi, ar * bi, ai * br)
        else:
            self._products = None

        if accept:
            self._operands = (int(a_real), int(a_imag), int(b_real), int(b_imag))
        else:
            self._operands = None
