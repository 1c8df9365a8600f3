"""
CORDIC Rotator
==============

Generates a synchronized sine and cosine pair from a phase angle by iterative
shift-and-add vector rotation.  The vector starts at ``(1/gain, 0)`` so that
after ``K`` rotations the magnitude is unity and ``(x, y)`` are the cosine and
sine of the angle.  ``z`` holds the angle left to rotate, and converges toward
zero.

The angle is a fraction of a turn, ``2**angle_bits`` being a full circle, the
same as the upper bits of a phase accumulator.
"""
import math
from myhdl import enum

from dsp import saturate, to_signed

cordic_states = enum('IDLE', 'ROTATE', 'DONE')

def cordic_gain(iterations):
    """The magnitude growth of ``iterations`` CORDIC rotations."""
    gain = 1.0
    for i in range(iterations):
        gain *= math.sqrt(1 + 2 ** (-2 * i))
    return gain

def cordic_atan_table(iterations, z_bits):
    """The quantized ``atan(2**-i)`` table, in units of ``2**-z_bits`` turns."""
    turn = 2 ** z_bits
    return tuple([int(round(math.atan(2. ** -i) / (2 * math.pi) * turn))
            for i in range(iterations)])

class Cordic(object):
    """An iterative CORDIC sine/cosine generator.

    One computation is in flight at a time.  A request is taken in ``IDLE``,
    rotated for ``iterations`` ticks, and presented with ``valid`` asserted
    for the one tick spent in ``DONE``.  Requests made while busy are
    ignored.

    :param iterations: The number of rotations, ``K``.
    :param angle_bits: Width of the unsigned input angle.
    :param out_bits: Width of the signed sine and cosine.
    :param guard_bits: Extra fraction bits carried through the rotations.
    """
    def __init__(self, iterations=12, angle_bits=16, out_bits=16, guard_bits=2):
        assert iterations > 0
        self.iterations = iterations
        self.angle_bits = angle_bits
        self.out_bits = out_bits
        self.guard_bits = guard_bits
        self.z_bits = max(angle_bits, iterations) + 2
        self.scale = 2 ** (out_bits - 1) - 1
        self.atan_table = cordic_atan_table(iterations, self.z_bits)
        self.gain = cordic_gain(iterations)
        self.x_init = int(round((self.scale << guard_bits) / self.gain))
        self.latency = iterations + 1
        self.reset()

    def reset(self):
        self.state = cordic_states.IDLE
        self.iteration = 0
        self.x = 0
        self.y = 0
        self.z = 0
        self.valid = False
        self.sine = 0
        self.cosine = 0

    @property
    def ready(self):
        return self.state == cordic_states.IDLE

    def _load(self, angle):
        # As a signed number the angle spans [-pi, pi); fold it into
        # [-pi/2, pi/2] with a half turn taken by negating x.
        z = to_signed(angle, self.angle_bits) << (self.z_bits - self.angle_bits)
        quarter = 2 ** (self.z_bits - 2)
        half = 2 ** (self.z_bits - 1)
        x = self.x_init
        if z > quarter:
            z -= half
            x = -x
        elif z < -quarter:
            z += half
            x = -x
        self.x = x
        self.y = 0
        self.z = z
        self.iteration = 0

    def _step(self):
        i = self.iteration
        x, y, z = self.x, self.y, self.z
        if z >= 0:
            self.x = x - (y >> i)
            self.y = y + (x >> i)
            self.z = z - self.atan_table[i]
        else:
            self.x = x + (y >> i)
            self.y = y - (x >> i)
            self.z = z + self.atan_table[i]
        self.iteration = i + 1

    def _output(self, v):
        if self.guard_bits:
            v = (v + (1 << (self.guard_bits - 1))) >> self.guard_bits
        return saturate(v, self.out_bits)

    def tick(self, enable=False, angle=0):
        if self.state == cordic_states.IDLE:
            self.valid = False
            if enable:
                self._load(angle)
                self.state = cordic_states.ROTATE
        elif self.state == cordic_states.ROTATE:
            self._step()
            if self.iteration == self.iterations:
                self.cosine = self._output(self.x)
                self.sine = self._output(self.y)
                self.valid = True
                self.state = cordic_states.DONE
        else:
            self.valid = False
            self.state = cordic_states.IDLE

    def compute(self, angle):
        """Run a rotation to completion.

        :param angle: The unsigned angle, ``2**angle_bits`` per turn.
        :returns: The ``(sine, cosine)`` pair.
        """
        assert self.ready
        self.tick(enable=True, angle=angle)
        while not self.valid:
            self.tick()
        result = self.sine, self.cosine
        self.tick()
        return result
