#!/usr/bin/env python3
"""
IBD-like event selection on MC truth.

Prompt candidates are positrons and gammas below IBD_MAX_ENERGY, delayed
candidates are neutrons. An event is kept when it has at least one neutron
(primary or secondary) and at least one prompt candidate.
"""
import config
from geometry import Position


class IBDSelection:
    """Counts IBD-like particles in an event and decides whether to keep it."""

    COUNT_KEYS = ('NeutronCount', 'SecNeutronCount', 'PositronCount', 'GammaCount', 'SecGammaCount')

    @staticmethod
    def count_particles(particles, verbose=False):
        """Return the IBD particle counts as a dictionary keyed by COUNT_KEYS."""
        counts = dict.fromkeys(IBDSelection.COUNT_KEYS, 0)
        if verbose:
            print(f"Num MCParticles = {len(particles)}")
        for particle in particles:
            pdg = particle.pdg
            low_energy = particle.start_energy < config.IBD_MAX_ENERGY
            if particle.is_primary:
                if pdg == config.PDG_NEUTRON:
                    counts['NeutronCount'] += 1
                if pdg == config.PDG_POSITRON and low_energy:
                    counts['PositronCount'] += 1
                if pdg == config.PDG_GAMMA and low_energy:
                    counts['GammaCount'] += 1
            else:
                if pdg == config.PDG_GAMMA and low_energy:
                    counts['SecGammaCount'] += 1
                if pdg == config.PDG_NEUTRON:
                    counts['SecNeutronCount'] += 1
        return counts

    @staticmethod
    def is_ibd_like(counts):
        neutrons = counts['NeutronCount'] + counts['SecNeutronCount']
        gammas = counts['GammaCount'] + counts['SecGammaCount']
        return neutrons >= config.MIN_NEUTRONS and (
            gammas >= config.MIN_PROMPT or counts['PositronCount'] >= config.MIN_PROMPT)


def find_true_vertex(particles, verbose=False):
    """Start vertex of the first primary particle; primaries share one vertex."""
    if verbose:
        print(f"Num MCParticles = {len(particles)}")
    for particle in particles:
        if particle.is_primary:
            return particle.start_vertex
    print("No primary particle found in this event")
    return Position(*config.NO_VERTEX)
