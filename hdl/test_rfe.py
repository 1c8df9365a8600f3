"""
Simulating the Control Plane
----------------------------
"""
import unittest

from myhdl import block, always, instance, StopSimulation

from apb3_utils import Apb3Bus, apb3_control_slave
from receiver import Receiver
from rfe import ControlPlane, Configuration, ConfigurationError, \
        RegisterError, validate_configuration, control_word, \
        RFE_REGISTER_FILE, RFE_CONTROL_REGISTER, RFE_STATUS_REGISTER

for name, addr in RFE_REGISTER_FILE.items():
    globals()[name] = addr

for name, bit in RFE_CONTROL_REGISTER.items():
    globals()[name] = bit

for name, bit in RFE_STATUS_REGISTER.items():
    globals()[name] = bit

APB3_DURATION = int(1e9 / 40e6)

class TestValidation(unittest.TestCase):
    def test_defaults(self):
        validate_configuration(Configuration())

    def test_field_widths(self):
        with self.assertRaises(ConfigurationError):
            validate_configuration(Configuration(cic_decimation=256))
        with self.assertRaises(ConfigurationError):
            validate_configuration(Configuration(phase_offset=-1))
        with self.assertRaises(ValueError):
            validate_configuration(Configuration(fir_taps=300))

    def test_limits(self):
        validate_configuration(Configuration(frequency_word=2**24 - 1),
                phase_bits=24)
        with self.assertRaises(ConfigurationError):
            validate_configuration(Configuration(frequency_word=2**24),
                    phase_bits=24)
        with self.assertRaises(ConfigurationError):
            validate_configuration(Configuration(fir_taps=17),
                    fir_capacity=16)

    def test_control_word(self):
        assert control_word(Configuration()) == 0
        assert control_word(Configuration(enable_ddc=True,
            fir_symmetric=True)) == 1 << RFC_DDCEN | 1 << RFC_SYMMETRIC

class TestControlPlane(unittest.TestCase):
    def setUp(self):
        self.receiver = Receiver()
        self.plane = ControlPlane(self.receiver)

    def test_round_trip(self):
        plane = self.plane
        for addr, data in [
                (RF_FCW_ADDR, 0x200000),
                (RF_PHASE_ADDR, 0x4000),
                (RF_DECIM_ADDR, 0x0302),
                (RF_FIR_TAPS_ADDR, 15),
                (RF_CONTROL_ADDR, 0x3f)]:
            plane.write(addr, data)
            assert plane.read(addr) == data, hex(addr)

        config = self.receiver.config
        assert config.frequency_word == 0x200000
        assert config.phase_offset == 0x4000
        assert config.cic_decimation == 2
        assert config.fir_decimation == 3
        assert config.fir_taps == 15
        assert config.enable_ddc and config.enable_fir and config.enable_decimation
        assert config.bypass_cic and config.bypass_fir and config.fir_symmetric

    def test_masks(self):
        self.plane.write(RF_PHASE_ADDR, 0x12345)
        assert self.plane.read(RF_PHASE_ADDR) == 0x2345

    def test_control_bits(self):
        self.plane.write(RF_CONTROL_ADDR, 1 << RFC_DECIMEN)
        config = self.receiver.config
        assert config.enable_decimation
        assert not config.enable_ddc and not config.enable_fir

    def test_invalid_write_keeps_configuration(self):
        self.plane.write(RF_FIR_TAPS_ADDR, 8)
        with self.assertRaises(ConfigurationError):
            self.plane.write(RF_FIR_TAPS_ADDR, 40)
        with self.assertRaises(ConfigurationError):
            self.plane.write(RF_FCW_ADDR, 2**24)
        assert self.receiver.config == Configuration(fir_taps=8)

    def test_status(self):
        self.plane.write(RF_FCW_ADDR, 1)
        self.plane.write(RF_CONTROL_ADDR, 1 << RFC_DDCEN)
        assert self.plane.read(RF_STATUS_ADDR) == 1 << RFS_DDCEN | 1 << RFS_LOCKED
        assert self.plane.read(RF_STATUS_ADDR) == self.receiver.status

    def test_register_errors(self):
        with self.assertRaises(RegisterError):
            self.plane.write(RF_STATUS_ADDR, 0)
        with self.assertRaises(RegisterError):
            self.plane.write(0x40, 0)
        with self.assertRaises(RegisterError):
            self.plane.read(0x40)

    def test_coefficients(self):
        plane = self.plane
        table = self.receiver.fir.coefficients
        plane.write(RF_COEFF_ADDR_ADDR, 5)
        plane.write(RF_COEFF_DATA_ADDR, 0x3ffff)
        plane.write(RF_COEFF_DATA_ADDR, 7)
        assert plane.read(RF_COEFF_ADDR_ADDR) == 7
        assert plane.read(RF_COEFF_DATA_ADDR) == 0
        assert table.active[5:7] == (0, 0)
        plane.write(RF_COEFF_COMMIT_ADDR, 1)
        assert table.active[5:7] == (-1, 7)

    def test_load_coefficients(self):
        self.plane.load_coefficients([1, -2, 3])
        self.plane.load_coefficients([4, 5], bank=1)
        assert self.receiver.fir.coefficients.active[:4] == (1, -2, 3, 0)
        assert self.receiver.decimation.polyphase.coefficients.active[:3] == (4, 5, 0)
        assert self.plane.read(RF_COEFF_ADDR_ADDR) == 0x82

    def test_reset(self):
        self.plane.write(RF_COEFF_ADDR_ADDR, 9)
        self.plane.write(RF_FCW_ADDR, 0x1234)
        self.plane.write(RF_CONTROL_ADDR, 1 << RFC_DDCEN)
        self.plane.reset()
        assert self.plane.read(RF_COEFF_ADDR_ADDR) == 0
        assert self.receiver.config == Configuration()
        assert self.plane.read(RF_STATUS_ADDR) == 0

class TestApb3ControlSlave(unittest.TestCase):
    def test_register_access(self):
        bus = Apb3Bus(duration=APB3_DURATION)
        receiver = Receiver()
        plane = ControlPlane(receiver)
        errors = []
        status = []

        @block
        def testbench():
            slave = apb3_control_slave(bus, plane)

            @always(bus.pclk.negedge)
            def monitor():
                if bus.pslverr:
                    errors.append(int(bus.paddr))

            @instance
            def stimulus():
                yield bus.reset()
                yield bus.transmit(RF_FCW_ADDR, 0x200000)
                yield bus.receive(RF_FCW_ADDR, assert_equals=0x200000)
                yield bus.transmit(RF_DECIM_ADDR, 0x0204)
                yield bus.receive(RF_DECIM_ADDR, assert_equals=0x0204)
                yield bus.transmit(RF_CONTROL_ADDR,
                        1 << RFC_DDCEN | 1 << RFC_FIREN)
                yield bus.receive(RF_STATUS_ADDR)
                status.append(bus.rdata)
                yield bus.transmit(RF_STATUS_ADDR, 0)
                assert bus.slverr
                yield bus.transmit(RF_PHASE_ADDR, 0x10)
                assert not bus.slverr
                yield bus.receive(0x40)
                yield bus.transmit(RF_FIR_TAPS_ADDR, 40)
                raise StopSimulation

            return slave, monitor, stimulus

        testbench().run_sim(quiet=1)

        config = receiver.config
        assert config.frequency_word == 0x200000
        assert config.cic_decimation == 4 and config.fir_decimation == 2
        assert config.enable_ddc and config.enable_fir
        assert status == [1 << RFS_DDCEN | 1 << RFS_LOCKED | 1 << RFS_FIREN]
        assert errors == [RF_STATUS_ADDR, 0x40, RF_FIR_TAPS_ADDR]
        assert config.fir_taps == 0
        assert config.phase_offset == 0x10

    def test_bus_reset(self):
        bus = Apb3Bus(duration=APB3_DURATION)
        receiver = Receiver()
        plane = ControlPlane(receiver)

        @block
        def testbench():
            slave = apb3_control_slave(bus, plane)

            @instance
            def stimulus():
                yield bus.reset()
                yield bus.transmit(RF_FCW_ADDR, 0x200000)
                yield bus.transmit(RF_COEFF_ADDR_ADDR, 0x85)
                yield bus.receive(RF_COEFF_ADDR_ADDR, assert_equals=0x85)
                yield bus.reset()
                yield bus.receive(RF_COEFF_ADDR_ADDR, assert_equals=0)
                yield bus.receive(RF_FCW_ADDR, assert_equals=0)
                raise StopSimulation

            return slave, stimulus

        testbench().run_sim(quiet=1)
        assert receiver.config == Configuration()
        assert plane.coeff_address == 0

if __name__ == '__main__':
    unittest.main()
