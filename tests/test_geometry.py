"""Tests for the toolchain geometry classes and their construction from WCSim."""

import math

import pytest

import config
from geometry import (
    Channel, Detector, Direction, ElectronicsCounter, GeoStatus, Geometry, Position,
    construct_toolchain_geometry,
)

from tests.factories import make_geometry


class TestPosition:
    """Vector arithmetic and angle conventions."""

    def test_arithmetic(self):
        a = Position(1., 2., 3.)
        b = Position(4., 5., 6.)

        assert a + b == Position(5., 7., 9.)
        assert b - a == Position(3., 3., 3.)
        assert -a == Position(-1., -2., -3.)
        assert a * 2 == Position(2., 4., 6.)
        assert 2 * a == Position(2., 4., 6.)
        assert a * b == pytest.approx(32.)

    def test_magnitude_and_unit(self):
        v = Position(3., 4., 0.)
        assert v.mag2() == pytest.approx(25.)
        assert v.mag() == pytest.approx(5.)
        assert v.unit().mag() == pytest.approx(1.)

    def test_cross_and_angle(self):
        x = Position(1., 0., 0.)
        y = Position(0., 1., 0.)
        assert x.cross(y) == Position(0., 0., 1.)
        assert x.angle(y) == pytest.approx(math.pi / 2)
        assert x.angle(Position()) == 0.

    def test_orthogonal_is_perpendicular(self):
        v = Position(1., 2., 3.)
        assert v.dot(v.orthogonal()) == pytest.approx(0.)

    def test_perp2(self):
        v = Position(3., 4., 12.)
        assert v.perp2() == pytest.approx(25.)
        assert v.perp2(Position(0., 0., 1.)) == pytest.approx(25.)

    def test_phi_theta_r(self):
        """Phi from the beam (z) axis, theta from the x-z plane."""
        v = Position(1., 0., 1.)
        assert v.get_phi() == pytest.approx(math.pi / 4)
        assert v.get_theta() == pytest.approx(0.)
        assert v.get_r() == pytest.approx(math.sqrt(2.))
        assert Position(0., 1., 1.).get_theta() == pytest.approx(math.pi / 4)

    def test_unit_conversion(self):
        v = Position(1., 2., 3.)
        v.unit_to_centimeter()
        assert v == Position(100., 200., 300.)
        v.unit_to_meter()
        assert v == Position(1., 2., 3.)

    def test_direction_keeps_its_type(self):
        d = Direction(0., 0., 1.)
        assert isinstance(-d, Direction)


def _detector(key, chankey, element="Tank"):
    det = Detector(key, element, "Anywhere", Position(), Direction(0., 0., 1.), "pmt")
    det.add_channel(Channel(chankey, Position(), 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0))
    return det


class TestGeometry:
    """Detector bookkeeping."""

    def test_add_and_lookup(self):
        geom = Geometry()
        geom.add_detector(_detector(0, 10))

        assert geom.get_detector(0).key == 0
        assert geom.channel_to_detector(10).key == 0
        assert geom.get_channel(10).key == 10
        assert geom.get_detector(1) is None
        assert geom.get_channel(11) is None

    def test_duplicate_detector_key_raises(self):
        geom = Geometry()
        geom.add_detector(_detector(0, 10))
        with pytest.raises(ValueError):
            geom.add_detector(_detector(0, 11))

    def test_duplicate_channel_key_raises(self):
        geom = Geometry()
        geom.add_detector(_detector(0, 10))
        with pytest.raises(ValueError):
            geom.add_detector(_detector(1, 10))

    def test_counts_fall_back_to_set_size(self):
        geom = Geometry()
        geom.add_detector(_detector(0, 10))
        geom.add_detector(_detector(1, 11, element="MRD"))

        assert geom.get_num_detector_sets() == 2
        assert geom.get_num_detectors_in_set("Veto") == 0
        assert geom.get_num_tank_pmts() == 1
        assert geom.get_num_mrd_pmts() == 1
        assert geom.get_num_lappds() == 0

    def test_consume_keys_are_sequential(self):
        geom = Geometry()
        assert [geom.consume_next_free_detector_key() for _ in range(3)] == [0, 1, 2]
        assert geom.consume_next_free_channel_key() == 0

    def test_global_to_tank_centered(self):
        geom = Geometry(tank_centre=Position(1., 2., 3.))
        assert geom.global_to_tank_centered(Position(1., 2., 4.)) == Position(0., 0., 1.)


class TestElectronicsCounter:
    """Crate/card/channel rollover."""

    def test_first_channel_is_preincremented(self):
        counter = ElectronicsCounter()
        counter.advance()
        assert (counter.adc_crate, counter.adc_card, counter.adc_channel) == (0, 0, 1)
        assert counter.hv_channel == 1

    def test_adc_card_rollover_advances_mt_channel(self):
        counter = ElectronicsCounter()
        for _ in range(config.ADC_CHANNELS_PER_CARD):
            counter.advance()
        assert counter.adc_channel == 0
        assert counter.adc_card == 1
        assert counter.mt_channel == 1

    def test_hv_rollover(self):
        counter = ElectronicsCounter()
        for _ in range(config.CAEN_HV_CHANNELS_PER_CARD):
            counter.advance()
        assert counter.hv_channel == 0
        assert counter.hv_card == 1

    def test_adc_crate_rollover(self):
        counter = ElectronicsCounter()
        for _ in range(config.ADC_CHANNELS_PER_CARD * config.ADC_CARDS_PER_CRATE):
            counter.advance()
        assert counter.adc_card == 0
        assert counter.adc_crate == 1


class TestConstructToolchainGeometry:
    """Building the toolchain geometry from a WCSim geometry record."""

    def test_tank_dimensions(self):
        geom, _, _ = construct_toolchain_geometry(make_geometry(offset_cm=(100., 200., 300.)))

        assert geom.tank_centre.as_array() == pytest.approx([1., 2., 3.])
        assert geom.tank_radius == pytest.approx(10.)
        # the full cylinder length is kept in the halfheight slot
        assert geom.tank_halfheight == pytest.approx(20.)
        assert geom.pmt_enclosed_radius == 1.0
        assert geom.pmt_enclosed_halfheight == 1.45
        assert geom.status == GeoStatus.FULLY_OPERATIONAL

    def test_detectors_and_maps(self, wcsim_geometry):
        geom, tube_to_chan, chan_to_tube = construct_toolchain_geometry(wcsim_geometry)

        assert geom.get_num_detectors_in_set("Tank") == wcsim_geometry.num_pmts
        assert tube_to_chan[1] == 0
        assert chan_to_tube[15] == 16
        detector = geom.channel_to_detector(tube_to_chan[13])
        assert detector.element == "Tank"
        assert detector.tank_location == "Anywhere"
        assert detector.position.z == pytest.approx(10.)

    def test_only_num_pmts_are_used(self, wcsim_geometry):
        wcsim_geometry.num_pmts = 4
        geom, tube_to_chan, _ = construct_toolchain_geometry(wcsim_geometry)
        assert geom.get_num_detectors_in_set("Tank") == 4
        assert sorted(tube_to_chan) == [1, 2, 3, 4]
