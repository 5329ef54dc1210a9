#!/usr/bin/env python3
"""
WCSim ROOT file reader.

Reads the event, geometry and options trees of a WCSim output file with
uproot and converts the deserialized WCSim objects into plain records.
The WCSim class layout comes from the streamer info stored in the file;
objects are accessed through uproot's ``member()`` interface.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import numpy as np
import uproot

import config


class EmptyTreeError(ValueError):
    """Raised when a single-entry WCSim tree (geometry, options) is empty."""


@dataclass
class WCSimPMT:
    tube_no: int
    cyl_loc: int
    orientation: tuple
    position: tuple  # cm
    name: str = "WCSimRootPMT"


@dataclass
class WCSimGeometry:
    cyl_radius: float  # cm
    cyl_length: float  # cm
    num_pmts: int
    offset: tuple  # cm
    pmts: List[WCSimPMT]
    geo_type: int = 0
    pmt_radius: float = 0.
    num_od_pmts: int = 0
    od_pmt_radius: float = 0.
    orientation: int = 0


@dataclass
class WCSimTrack:
    ipnu: int
    flag: int
    mass: float
    momentum: float
    energy: float
    end_energy: float
    direction: tuple
    start: tuple  # cm
    stop: tuple  # cm
    parent_type: int
    time: float
    stop_time: float
    track_id: int
    parent_id: int = 0
    start_vol: int = 0
    stop_vol: int = 0
    creator: int = 0
    destroyer: int = 0


@dataclass
class WCSimCherenkovHit:
    tube_id: int
    time_array_index: int
    total_pe: int


@dataclass
class WCSimHitTime:
    true_time: float
    parent_id: int


@dataclass
class WCSimDigiHit:
    tube_id: int
    q: float
    t: float
    photon_ids: List[int] = field(default_factory=list)


@dataclass
class WCSimTrigger:
    event_number: int
    date: float
    mode: int = 0
    vtxvol: int = 0
    vertex: tuple = (0., 0., 0.)
    jmu: int = 0
    npar: int = 0
    tracks: List[WCSimTrack] = field(default_factory=list)
    cherenkov_hits: List[WCSimCherenkovHit] = field(default_factory=list)
    hit_times: List[Optional[WCSimHitTime]] = field(default_factory=list)
    digi_hits: List[WCSimDigiHit] = field(default_factory=list)

    @property
    def ntrack(self):
        return len(self.tracks)


@dataclass
class WCSimEvent:
    triggers: List[WCSimTrigger]

    @property
    def num_triggers(self):
        return len(self.triggers)


def _member(obj, name, default=None):
    """Return a member of a deserialized WCSim object, or default when the class version lacks it."""
    value = obj.member(name, none_if_missing=True)
    return default if value is None else value


def _triplet(values):
    return tuple(float(v) for v in values)


def _objects(collection):
    """Iterate a TObjArray/TClonesArray, skipping empty slots."""
    if collection is None:
        return []
    return [item for item in collection if item is not None]


def pmt_from_model(obj):
    return WCSimPMT(
        tube_no=int(obj.member("fTubeNo")),
        cyl_loc=int(obj.member("fCylLoc")),
        orientation=_triplet(obj.member("fOrientation")),
        position=_triplet(obj.member("fPosition")),
    )


def geometry_from_model(obj):
    pmts = [pmt_from_model(p) for p in _objects(obj.member("fPMTArray"))]
    return WCSimGeometry(
        cyl_radius=float(obj.member("fWCCylRadius")),
        cyl_length=float(obj.member("fWCCylLength")),
        num_pmts=int(obj.member("fWCNumPMT")),
        offset=_triplet(obj.member("fWCOffset")),
        pmts=pmts,
        geo_type=int(_member(obj, "fgeo_type", 0)),
        pmt_radius=float(_member(obj, "fWCPMTRadius", 0.)),
        num_od_pmts=int(_member(obj, "fODWCNumPMT", 0)),
        od_pmt_radius=float(_member(obj, "fODWCPMTRadius", 0.)),
        orientation=int(_member(obj, "fOrientation", 0)),
    )


def track_from_model(obj):
    return WCSimTrack(
        ipnu=int(obj.member("fIpnu")),
        flag=int(obj.member("fFlag")),
        mass=float(obj.member("fM")),
        momentum=float(obj.member("fP")),
        energy=float(obj.member("fE")),
        end_energy=float(_member(obj, "fEndE", 0.)),
        direction=_triplet(obj.member("fDir")),
        start=_triplet(obj.member("fStart")),
        stop=_triplet(obj.member("fStop")),
        parent_type=int(obj.member("fParenttype")),
        time=float(obj.member("fTime")),
        stop_time=float(_member(obj, "fStopTime", 0.)),
        track_id=int(obj.member("fId")),
        parent_id=int(_member(obj, "fParentId", 0)),
        start_vol=int(_member(obj, "fStartvol", 0)),
        stop_vol=int(_member(obj, "fStopvol", 0)),
        creator=int(_member(obj, "fCreatorProcess", 0)),
        destroyer=int(_member(obj, "fDestroyerProcess", 0)),
    )


def cherenkov_hit_from_model(obj):
    total_pe = obj.member("fTotalPe")
    return WCSimCherenkovHit(
        tube_id=int(obj.member("fTubeID")),
        time_array_index=int(total_pe[0]),
        total_pe=int(total_pe[1]),
    )


def hit_time_from_model(obj):
    return WCSimHitTime(
        true_time=float(obj.member("fTruetime")),
        parent_id=int(obj.member("fPrimaryParentID")),
    )


def digi_hit_from_model(obj):
    return WCSimDigiHit(
        tube_id=int(obj.member("fTubeId")),
        q=float(obj.member("fQ")),
        t=float(obj.member("fT")),
        photon_ids=[int(i) for i in _member(obj, "fPhotonIds", [])],
    )


def trigger_from_model(obj):
    header = obj.member("fEvtHdr")
    hit_times = obj.member("fCherenkovHitTimes")
    return WCSimTrigger(
        event_number=int(header.member("fEvtNum")),
        date=float(header.member("fDate")),
        mode=int(_member(obj, "fMode", 0)),
        vtxvol=int(_member(obj, "fVtxvol", 0)),
        vertex=_triplet(_member(obj, "fVtx", (0., 0., 0.))),
        jmu=int(_member(obj, "fJmu", 0)),
        npar=int(_member(obj, "fNpar", 0)),
        tracks=[track_from_model(t) for t in _objects(obj.member("fTracks"))],
        cherenkov_hits=[cherenkov_hit_from_model(h) for h in _objects(obj.member("fCherenkovHits"))],
        # keep slot positions: digits refer to photons by index
        hit_times=[None if h is None else hit_time_from_model(h) for h in (hit_times or [])],
        digi_hits=[digi_hit_from_model(d) for d in _objects(obj.member("fCherenkovDigiHits"))],
    )


def event_from_model(obj):
    return WCSimEvent(triggers=[trigger_from_model(t) for t in _objects(obj.member("fEventList"))])


def options_from_model(obj):
    """Flatten a WCSimRootOptions object into a plain dictionary."""
    options = {}
    for name, value in obj.all_members.items():
        if name.startswith("@") or name == "TObject":
            continue
        if isinstance(value, np.ndarray):
            value = value.tolist()
        options[name] = value
    return options


class WCSimReader:
    """Handles reading of a single WCSim output file."""

    def __init__(self, path):
        self.path = Path(path)
        if not self.path.exists():
            raise FileNotFoundError(f"Could not open input file: {self.path}")
        self.file = uproot.open(self.path)
        try:
            self.event_tree = self.file[config.EVENT_TREE]
        except uproot.KeyInFileError:
            self.file.close()
            raise

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        self.file.close()

    @property
    def num_events(self):
        return self.event_tree.num_entries

    def _read_single_entry(self, tree_name, branch_name):
        tree = self.file[tree_name]
        if tree.num_entries == 0:
            raise EmptyTreeError(f"Tree {tree_name} in {self.path} has no entries")
        return tree[branch_name].array(library="np", entry_stop=1)[0]

    def read_geometry(self):
        """Read the single geometry entry and return a WCSimGeometry record."""
        return geometry_from_model(self._read_single_entry(config.GEOMETRY_TREE, config.GEOMETRY_BRANCH))

    def read_options(self):
        """Read the options entry; files written without the options tree give an empty dict."""
        try:
            obj = self._read_single_entry(config.OPTIONS_TREE, config.OPTIONS_BRANCH)
        except uproot.KeyInFileError:
            print(f"Warning: '{config.OPTIONS_TREE}' tree not found in {self.path}. Continuing without options.")
            return {}
        return options_from_model(obj)

    def iterate_events(self, step_size=config.READ_STEP_SIZE):
        """Yield WCSimEvent records in file order, deserializing step_size entries at a time."""
        if self.num_events == 0:
            return
        branch = self.event_tree[config.EVENT_BRANCH]
        for start in range(0, self.num_events, step_size):
            stop = min(start + step_size, self.num_events)
            for obj in branch.array(library="np", entry_start=start, entry_stop=stop):
                yield event_from_model(obj)
