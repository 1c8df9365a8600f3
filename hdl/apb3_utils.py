"""
APB3 Bus Functional Model
=========================

A bus functional model drives the control plane from procedural code, the way
a processor on the system bus would.  A test runs a sequence of register
reads and writes and checks what comes back.

:class:`Apb3Bus` is the master side of an ARM APB3 peripheral bus.
:func:`apb3_control_slave` is the receiver side: it answers each transfer
from a :class:`rfe.ControlPlane`.
"""
import logging
from myhdl import \
        block, Signal, ResetSignal, intbv, \
        always, always_seq, delay

from rfe import ConfigurationError, RegisterError

logger = logging.getLogger(__name__)

class Apb3TimeoutError(Exception):
    """Raised when a bus transaction times out."""
    pass

class Apb3Bus(object):
    """The master side of an APB3 bus.

    Every transfer method is a generator to be yielded from a MyHDL
    ``instance``.  After a transfer, ``rdata`` holds the data read (reads
    only) and ``slverr`` whether the slave flagged an error.
    """
    def __init__(self, duration, timeout=None):
        """Initialize the bus.

        :param duration: Clock period in ns
        :param timeout: Period to wait before timeout in ns, default five
            clock periods
        """
        self.duration = duration
        self.timeout = timeout or 5 * duration
        self.presetn = ResetSignal(0, 0, isasync=True)
        self.pclk = Signal(bool(0))
        self.paddr = Signal(intbv(0, 0, 2**32))
        self.psel = Signal(bool(0))
        self.penable = Signal(bool(0))
        self.pwrite = Signal(bool(1))
        self.pwdata = Signal(intbv(0, 0, 2**32))
        self.pready = Signal(bool(1))
        self.prdata = Signal(intbv(0, 0, 2**32))
        self.pslverr = Signal(bool(0))
        self.rdata = None
        self.slverr = False

    def _half(self, level):
        self.pclk.next = level
        yield delay(self.duration // 2)

    def reset(self):
        """Pulse ``presetn`` low for five clocks."""
        logger.debug('-- Resetting --')
        self.presetn.next = True
        yield delay(self.duration)
        self.presetn.next = False
        yield self.delay(5)
        self.presetn.next = True
        logger.debug('-- Reset --')

    def _transfer(self, addr, write, data=0):
        # SETUP, then ACCESS until the slave is ready, then back to IDLE
        assert not addr & 3  # Must be word aligned
        self.paddr.next = intbv(addr)
        self.pwrite.next = write
        self.psel.next = True
        if write:
            self.pwdata.next = intbv(data)
        yield self._half(True)
        yield self._half(False)

        self.penable.next = True
        yield self._half(True)

        waited = 0
        while not self.pready:
            logger.debug('wait addr=%s', hex(addr))
            waited += self.duration
            if waited > self.timeout:
                raise Apb3TimeoutError(hex(addr))
            yield self._half(False)
            yield self._half(True)

        self.slverr = bool(self.pslverr)
        if not write:
            self.rdata = int(self.prdata)
        yield self._half(False)

        self.pwrite.next = False
        self.psel.next = False
        self.penable.next = False
        yield self._half(True)
        yield self._half(False)

    def transmit(self, addr, data):
        """Write ``data`` to the register at ``addr``.

        :raises Apb3TimeoutError: If slave doesn't set ``pready`` in time
        """
        logger.debug('-- Transmitting addr=%s data=%s --', hex(addr), hex(data))
        yield self._transfer(addr, True, data)
        if self.slverr:
            logger.debug('TX: slave error')

    def receive(self, addr, assert_equals=None):
        """Read the register at ``addr`` into ``self.rdata``.

        :param assert_equals: When given, the value the read must return.
        :raises Apb3TimeoutError: If slave doesn't set ``pready`` in time
        """
        logger.debug('-- Receiving addr=%s --', hex(addr))
        yield self._transfer(addr, False)
        logger.debug('RX: data=%s', hex(self.rdata))
        if assert_equals is not None:
            assert self.rdata == assert_equals, 'Got %s, expected %s' % (
                    hex(self.rdata), hex(assert_equals))

    def delay(self, cycles):
        """Delay the bus a number of cycles."""
        for i in range(cycles):
            yield self._half(True)
            yield self._half(False)

@block
def apb3_control_slave(bus, control_plane):
    """Answer APB3 transfers from a :class:`rfe.ControlPlane`.

    An access to a missing or read only register, or a write of a value the
    receiver cannot take, sets ``pslverr`` for the transfer instead of
    completing it.  Asserting ``presetn`` resets the control plane, and with
    it the receiver.

    :param bus: The :class:`Apb3Bus`.
    :param control_plane: The register file.
    :returns: A simulation capable MyHDL instance.
    """
    @always(bus.presetn.negedge)
    def peripheral_reset():
        control_plane.reset()

    @always_seq(bus.pclk.posedge, reset=bus.presetn)
    def controller():
        bus.pready.next = True
        bus.pslverr.next = False
        if bus.psel and bus.penable:
            try:
                if bus.pwrite:
                    control_plane.write(int(bus.paddr), int(bus.pwdata))
                else:
                    bus.prdata.next = control_plane.read(int(bus.paddr))
            except (RegisterError, ConfigurationError) as e:
                logger.warning('slave error: %s', e)
                bus.pslverr.next = True

    return peripheral_reset, controller
