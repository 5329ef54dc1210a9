#!/usr/bin/env python3
"""
Projection of tank PMT positions onto the 2D CNN image plane.

Two mappings are provided:

- geometric: the barrel is unwrapped around the tank axis (x from the
  azimuth, y from the height) and the endcaps are drawn as disks above and
  below it, all in units of SIZE_TOP_DRAWING;
- PMT-wise: every PMT gets its own (column, row) cell. Barrel PMTs keep the
  unwrapped azimuth, endcap PMTs are binned in radial slices and their azimuth
  is snapped to the nearest barrel column position.

All positions handed to these functions are tank-centred, in metres.
"""
import math
from pathlib import Path

import numpy as np
import pandas as pd

import config
from geometry import Position

TOP = 'top'
BOTTOM = 'bottom'
BARREL = 'barrel'


def unwrap_phi(x, y):
    """
    Azimuth used for unwrapping the barrel, in [-pi, pi].

    Zero on the +x axis, increasing clockwise when looking down the tank
    axis. On the -x axis the angle is +pi; a PMT on the axis itself maps to -pi.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    phi = -np.arctan2(y, x)
    phi = np.where((y == 0) & (x < 0), np.pi, phi)
    phi = np.where((x == 0) & (np.abs(y) < config.AXIS_TOLERANCE), -np.pi, phi)
    return phi if phi.ndim else float(phi)


def round_half_away(value, decimals=config.LAYOUT_ROUNDING):
    """Round half away from zero, like C's round(value * 10**decimals) / 10**decimals."""
    scale = 10 ** decimals
    scaled = abs(value * scale)
    rounded = math.floor(scaled)
    # scaled - rounded is exact, so values just below one half round down
    if scaled - rounded >= 0.5:
        rounded += 1
    return math.copysign(rounded, value) / scale


def convert_position_to_2d(pos, min_z, max_z, tank_radius, tank_height,
                           size=config.SIZE_TOP_DRAWING):
    """Geometric 2D position (x, y) of a PMT."""
    endcap_offset = (0.45 * tank_height / tank_radius + 1) * size
    if abs(pos.z - max_z) < config.ENDCAP_Z_TOLERANCE:
        x = 0.5 - size * pos.x / tank_radius
        y = 0.5 + endcap_offset - size * pos.y / tank_radius
    elif abs(pos.z - min_z) < config.ENDCAP_Z_TOLERANCE:
        x = 0.5 - size * pos.x / tank_radius
        y = 0.5 - endcap_offset + size * pos.y / tank_radius
    else:
        x = 0.5 + unwrap_phi(pos.x, pos.y) * size
        y = 0.5 + pos.z / tank_radius * size
    return x, y


def radial_slice(rho, rho_slice=config.RHO_SLICE, num_slices=config.NUM_SLICES):
    """Radial slice index in [1, num_slices]; slice i covers ((i-1)*rho_slice, i*rho_slice]."""
    for i_slice in range(num_slices, 0, -1):
        if rho > (i_slice - 1) * rho_slice:
            return i_slice
    return 1


def snap_to_nearest(value, candidates):
    """Closest candidate to value; the first one wins on ties."""
    candidates = np.asarray(candidates, dtype=float)
    if candidates.size == 0:
        raise ValueError("No candidate positions to snap to")
    return float(candidates[np.argmin(np.abs(candidates - value))])


def _endcap_x(pos, phi_positions, size):
    return snap_to_nearest(0.5 + unwrap_phi(pos.x, pos.y) * size, phi_positions)


def convert_position_to_2d_top(pos, npmts_y, phi_positions, size=config.SIZE_TOP_DRAWING,
                               num_slices=config.NUM_SLICES):
    """PMT-wise 2D position of a top endcap PMT; outer slices sit next to the barrel."""
    i_slice = radial_slice(math.hypot(pos.x, pos.y), num_slices=num_slices)
    y = (config.NPMTS_Y_BARREL + 2 * num_slices - i_slice) / npmts_y
    return _endcap_x(pos, phi_positions, size), y


def convert_position_to_2d_bottom(pos, npmts_y, phi_positions, size=config.SIZE_TOP_DRAWING,
                                  num_slices=config.NUM_SLICES):
    """PMT-wise 2D position of a bottom endcap PMT."""
    i_slice = radial_slice(math.hypot(pos.x, pos.y), num_slices=num_slices)
    return _endcap_x(pos, phi_positions, size), i_slice / npmts_y


def load_phi_positions(path=config.PHI_POSITIONS_FILE):
    """Read the endcap column positions: whitespace separated floats in any line layout."""
    return np.array(Path(path).read_text().split(), dtype=float)


def npmts_y(include_top_bottom=config.INCLUDE_TOP_BOTTOM):
    if include_top_bottom:
        return config.NPMTS_Y_BARREL + 2 * config.NUM_SLICES
    return config.NPMTS_Y_BARREL


class PMTTable:
    """Tank-centred positions of the tank PMTs, ordered by detector key."""

    def __init__(self, geom):
        centre = geom.tank_centre
        rows = []
        for detkey, detector in geom.detectors.get(config.TANK_DETECTOR_ELEMENT, {}).items():
            chankey = next(iter(detector.channels))
            rows.append({
                'detkey': detkey,
                'chankey': chankey,
                'x': detector.position.x - centre.x,
                'y': detector.position.y - centre.y,
                'z': detector.position.z - centre.z,
                'location': detector.tank_location,
            })
        self.df = pd.DataFrame(rows, columns=['detkey', 'chankey', 'x', 'y', 'z', 'location'])
        self.df = self.df.set_index('detkey', drop=False)
        inner = self.df[self.df['location'] != config.OD_LOCATION]
        self.max_z = float(inner['z'].max()) if not inner.empty else 0.
        self.min_z = float(inner['z'].min()) if not inner.empty else 0.

    def __len__(self):
        return len(self.df)

    @property
    def detkeys(self):
        return self.df['detkey'].tolist()

    def position(self, detkey):
        row = self.df.loc[detkey]
        return Position(row["x"], row["y"], row["z"])

    def is_od(self, detkey):
        return self.df.at[detkey, 'location'] == config.OD_LOCATION


class PMTLayout:
    """
    Sorted unique 2D coordinates of all tank PMTs and the (column, row) lookup.

    Barrel, top and bottom PMTs have separate column vectors; rows are shared.
    Without phi positions the endcap azimuth snaps to the barrel columns.
    """

    def __init__(self, table, tank_radius, tank_height, phi_positions=None,
                 include_top_bottom=config.INCLUDE_TOP_BOTTOM, size=config.SIZE_TOP_DRAWING):
        self.table = table
        self.tank_radius = tank_radius
        self.tank_height = tank_height
        self.include_top_bottom = include_top_bottom
        self.size = size
        self.npmts_x = config.NPMTS_X
        self.npmts_y = npmts_y(include_top_bottom)
        self.coords = {}
        self._build(phi_positions)

    def region(self, z):
        if z >= self.table.max_z - config.LAYOUT_Z_TOLERANCE:
            return TOP
        if z <= self.table.min_z + config.LAYOUT_Z_TOLERANCE:
            return BOTTOM
        return BARREL

    def geometric_xy(self, pos):
        return convert_position_to_2d(pos, self.table.min_z, self.table.max_z,
                                      self.tank_radius, self.tank_height, self.size)

    def _build(self, phi_positions):
        barrel, endcaps = [], []
        for detkey in self.table.detkeys:
            if self.table.is_od(detkey):
                continue
            pos = self.table.position(detkey)
            region = self.region(pos.z)
            if region == BARREL:
                barrel.append((detkey, pos))
            elif self.include_top_bottom:
                endcaps.append((detkey, pos, region))

        y_by_region = {TOP: [], BOTTOM: [], BARREL: []}
        x_by_region = {TOP: [], BOTTOM: [], BARREL: []}
        for detkey, pos in barrel:
            x, y = self.geometric_xy(pos)
            self._add(detkey, BARREL, x, y, x_by_region, y_by_region)

        if endcaps:
            if phi_positions is None or len(phi_positions) == 0:
                print("Warning: no phi positions given. Snapping endcap PMTs to the barrel columns.")
                phi_positions = sorted(set(x_by_region[BARREL]))
            for detkey, pos, region in endcaps:
                if region == TOP:
                    x, y = convert_position_to_2d_top(pos, self.npmts_y, phi_positions, self.size)
                else:
                    x, y = convert_position_to_2d_bottom(pos, self.npmts_y, phi_positions, self.size)
                self._add(detkey, region, x, y, x_by_region, y_by_region)

        self.x_barrel = np.unique(x_by_region[BARREL])
        self.x_top = np.unique(x_by_region[TOP])
        self.x_bottom = np.unique(x_by_region[BOTTOM])
        self.y_all = np.unique(y_by_region[TOP] + y_by_region[BOTTOM] + y_by_region[BARREL])
        self.y_top = np.unique(y_by_region[TOP])
        self.y_bottom = np.unique(y_by_region[BOTTOM])
        self.y_barrel = np.unique(y_by_region[BARREL])

        self._column_index = {
            region: {value: i for i, value in enumerate(xs)}
            for region, xs in ((BARREL, self.x_barrel), (TOP, self.x_top), (BOTTOM, self.x_bottom))
        }
        self._row_index = {value: i for i, value in enumerate(self.y_all)}

    def _add(self, detkey, region, x, y, x_by_region, y_by_region):
        x = round_half_away(x)
        y = round_half_away(y)
        self.coords[detkey] = (region, x, y)
        x_by_region[region].append(x)
        y_by_region[region].append(y)

    def locate(self, detkey):
        """(column, row) of a PMT in the PMT-wise image, or None if it is not laid out."""
        if detkey not in self.coords:
            return None
        region, x, y = self.coords[detkey]
        return self._column_index[region][x], self._row_index[y]

    def print_vectors(self):
        print("Sorted 2D position vectors: ")
        for name, values in (("x vector", self.x_barrel), ("y vector", self.y_all),
                             ("x top vector", self.x_top), ("x bottom vector", self.x_bottom)):
            for i, value in enumerate(values):
                print(f"{name} {i}: {value}")
        for name, values in (("y (top)", self.y_top), ("y (bottom)", self.y_bottom),
                             ("y (barrel)", self.y_barrel)):
            for value in values:
                print(f"{name}: {value}")


def phi_positions_or_none(path=config.PHI_POSITIONS_FILE):
    """Load the phi positions file, or None if it is missing or holds no values."""
    if not Path(path).exists():
        return None
    phi_positions = load_phi_positions(path)
    if phi_positions.size == 0:
        print(f"Warning: phi positions file {path} is empty.")
        return None
    return phi_positions
