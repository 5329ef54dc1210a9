"""Tests for converting deserialized WCSim objects and for opening WCSim files."""

import numpy as np
import pytest
import uproot

import config
from wcsim_reader import (
    EmptyTreeError, WCSimReader, cherenkov_hit_from_model, digi_hit_from_model, event_from_model,
    geometry_from_model, options_from_model, track_from_model, trigger_from_model,
)


class FakeModel:
    """Stands in for an uproot Model: members by name plus all_members."""

    def __init__(self, **members):
        self.all_members = members

    def member(self, name, none_if_missing=False):
        if name in self.all_members:
            return self.all_members[name]
        if none_if_missing:
            return None
        raise KeyError(name)


def _pmt(tube_no, z):
    return FakeModel(fTubeNo=tube_no, fCylLoc=1, fOrientation=np.array([0., 0., 1.]),
                     fPosition=np.array([0., 0., z]))


def _track(**overrides):
    members = dict(fIpnu=-11, fFlag=-1, fM=0.511, fP=20., fE=20.5, fDir=np.array([0., 0., 1.]),
                   fStart=np.array([1., 2., 3.]), fStop=np.array([4., 5., 6.]), fParenttype=0,
                   fTime=12., fId=1)
    members.update(overrides)
    return FakeModel(**members)


def _trigger(hit_times=None, tracks=None):
    return FakeModel(
        fEvtHdr=FakeModel(fEvtNum=3, fDate=950.),
        fTracks=tracks if tracks is not None else [_track()],
        fCherenkovHits=[FakeModel(fTubeID=4, fTotalPe=np.array([0, 2]))],
        fCherenkovHitTimes=hit_times if hit_times is not None else [],
        fCherenkovDigiHits=[FakeModel(fTubeId=4, fQ=1.5, fT=1001., fPhotonIds=np.array([0, 1]))],
    )


class TestModelConversion:
    """Member access on WCSim objects of any class version."""

    def test_geometry(self):
        obj = FakeModel(fWCCylRadius=1000., fWCCylLength=2000., fWCNumPMT=2,
                        fWCOffset=np.array([0., 0., 10.]), fPMTArray=[_pmt(1, 5.), None, _pmt(2, -5.)],
                        fgeo_type=0)
        geometry = geometry_from_model(obj)

        assert geometry.cyl_radius == 1000.
        assert geometry.num_pmts == 2
        assert geometry.offset == (0., 0., 10.)
        assert [p.tube_no for p in geometry.pmts] == [1, 2]
        assert geometry.pmts[1].position == (0., 0., -5.)
        assert geometry.num_od_pmts == 0

    def test_track_optional_members(self):
        track = track_from_model(_track())
        assert track.end_energy == 0.
        assert track.parent_id == 0
        assert track.start == (1., 2., 3.)

        track = track_from_model(_track(fEndE=3., fParentId=7, fStopTime=40.))
        assert (track.end_energy, track.parent_id, track.stop_time) == (3., 7, 40.)

    def test_missing_required_member_raises(self):
        obj = _track()
        del obj.all_members['fIpnu']
        with pytest.raises(KeyError):
            track_from_model(obj)

    def test_cherenkov_hit(self):
        hit = cherenkov_hit_from_model(FakeModel(fTubeID=4, fTotalPe=np.array([5, 2])))
        assert (hit.tube_id, hit.time_array_index, hit.total_pe) == (4, 5, 2)

    def test_digit_without_photon_ids(self):
        digit = digi_hit_from_model(FakeModel(fTubeId=4, fQ=1.5, fT=1001.))
        assert digit.photon_ids == []

    def test_trigger_keeps_hit_time_slots(self):
        hit_times = [FakeModel(fTruetime=990., fPrimaryParentID=1), None]
        trigger = trigger_from_model(_trigger(hit_times=hit_times))

        assert trigger.event_number == 3
        assert trigger.date == 950.
        assert trigger.ntrack == 1
        assert len(trigger.hit_times) == 2
        assert trigger.hit_times[1] is None
        assert trigger.digi_hits[0].photon_ids == [0, 1]
        assert trigger.cherenkov_hits[0].total_pe == 2

    def test_event(self):
        event = event_from_model(FakeModel(fEventList=[_trigger(), _trigger(tracks=[])]))
        assert event.num_triggers == 2
        assert event.triggers[1].ntrack == 0

    def test_options(self):
        obj = FakeModel(**{"@fUniqueID": 0, "TObject": None, "RandomSeed": 42,
                           "SaveFailuresMode": 1, "Offsets": np.array([1., 2.])})
        assert options_from_model(obj) == {"RandomSeed": 42, "SaveFailuresMode": 1, "Offsets": [1., 2.]}


class TestWCSimReader:
    """Opening files and reading the single-entry trees."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            WCSimReader(tmp_path / "missing.root")

    @pytest.fixture
    def empty_file(self, tmp_path):
        path = tmp_path / "empty.root"
        with uproot.recreate(path) as file:
            for tree in (config.EVENT_TREE, config.GEOMETRY_TREE, config.OPTIONS_TREE):
                file.mktree(tree, {"dummy": np.int32})
        return path

    def test_empty_trees(self, empty_file):
        with WCSimReader(empty_file) as reader:
            assert reader.num_events == 0
            assert list(reader.iterate_events()) == []
            with pytest.raises(EmptyTreeError):
                reader.read_geometry()
            with pytest.raises(EmptyTreeError):
                reader.read_options()

    def test_missing_options_tree(self, tmp_path, capsys):
        path = tmp_path / "no_options.root"
        with uproot.recreate(path) as file:
            for tree in (config.EVENT_TREE, config.GEOMETRY_TREE):
                file.mktree(tree, {"dummy": np.int32})

        with WCSimReader(path) as reader:
            assert reader.read_options() == {}
        assert "Warning" in capsys.readouterr().out
