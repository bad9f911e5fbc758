"""
Per-event digitization of drift-chamber sim hits.

For each hit, in collection order:

    cellID -> CellAddress -> WireDescriptor
    position (mm -> cm) -> wire-frame coordinates
    -> Gaussian smearing (along / perpendicular)
    -> cluster count and sizes from the calibration tables
    -> DigitizedHit (cm -> mm) + AssociationLink
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..config.schemas import Config
from ..errors import GeometryError, HitDataError
from ..geometry.cellid import CellIDDecoder
from ..geometry.chamber import DriftChamber
from ..geometry.projection import WireFrameCoordinates, distance_to_wire, project
from ..geometry.wires import WireDescriptor, WireGeometryModel
from ..physics.clusters import ClusterEstimator, ClusterResult, ClusterSampler, incidence_angle
from ..physics.events import DigiEvent, SimEvent
from ..physics.hits import CM_TO_MM, AssociationLink, DigitizedHit, RawHit
from ..physics.seeding import UniqueIDGenerator, prepare_random_engine
from ..physics.smearing import ResolutionSmearer, SmearResult
from ..vis.debug import DebugHistograms


def assemble(
    raw: RawHit,
    wire: WireDescriptor,
    coords: WireFrameCoordinates,
    smeared: SmearResult,
    clusters: ClusterResult,
    index: int,
) -> Tuple[DigitizedHit, AssociationLink]:
    """Package one hit; the only arithmetic is moving the wire point and cm -> mm."""
    position_cm = coords.closest_point + smeared.dz * wire.direction
    digi = DigitizedHit(
        cell_id=raw.cell_id,
        time_ns=raw.time_ns,
        edep=raw.edep,
        position_mm=position_cm * CM_TO_MM,
        direction_sw=wire.direction,
        along_wire_mm=smeared.along_wire * CM_TO_MM,
        distance_to_wire_mm=smeared.distance * CM_TO_MM,
        raw_along_wire_mm=coords.along_wire * CM_TO_MM,
        raw_distance_to_wire_mm=coords.distance * CM_TO_MM,
        wire_stereo_angle=wire.stereo_angle,
        wire_azimuthal_angle=wire.phi_z0,
        n_clusters=clusters.n_clusters,
        cluster_sizes=clusters.sizes,
        sim_hit_index=index,
    )
    # one digi per sim hit, so both collections share the index
    return digi, AssociationLink(digi_index=index, sim_index=index)


@dataclass
class EventDigis:
    digis: List[DigitizedHit]
    links: List[AssociationLink]
    debug: Optional[DebugHistograms] = None


class Digitizer:
    """
    Everything needed to digitize events; read-only once built.

    A single instance can be used from several threads at once: the random
    streams are reseeded thread-locally at the start of each event and the
    debug histograms are created per event.
    """

    def __init__(
        self,
        geometry: WireGeometryModel,
        decoder: CellIDDecoder,
        smearer: ResolutionSmearer,
        clusters: ClusterEstimator,
        seeds: UniqueIDGenerator,
        debug_template: Optional[DebugHistograms] = None,
    ):
        self.geometry = geometry
        self.decoder = decoder
        self.smearer = smearer
        self.clusters = clusters
        self.seeds = seeds
        self.debug_template = debug_template

    @classmethod
    def from_config(cls, cfg: Config, sampler: ClusterSampler) -> "Digitizer":
        chamber = DriftChamber.from_cfg(cfg.detector)
        smearer = ResolutionSmearer(cfg.digi.z_resolution_mm, cfg.digi.xy_resolution_mm)
        debug = None
        if cfg.debug.create_debug_histograms:
            cell_height = max(l.height_z0 for l in chamber.layers.values())
            debug = DebugHistograms.create(smearer.sigma_along_cm, smearer.sigma_perp_cm,
                                           max_distance_cm=2.0 * cell_height)
        return cls(
            geometry=WireGeometryModel(chamber),
            decoder=CellIDDecoder(cfg.detector.cellid_encoding, cfg.detector.nlayers_per_superlayer),
            smearer=smearer,
            clusters=ClusterEstimator(sampler),
            seeds=UniqueIDGenerator(cfg.seed.service_name, cfg.seed.salt),
            debug_template=debug,
        )

    def process_hits(self, hits: Sequence[RawHit], run: int, event: int) -> EventDigis:
        streams = prepare_random_engine(self.seeds, run, event)
        debug = self.debug_template.empty_like() if self.debug_template is not None else None

        digis, links = [], []
        for i, raw in enumerate(hits):
            try:
                wire = self.geometry.describe(self.decoder.address(raw.cell_id))
                coords = project(raw.position_cm, wire)
            except GeometryError as exc:
                raise GeometryError(
                    f"DCHdigi: run {run} event {event} hit {i} (cellID {raw.cell_id}): {exc}"
                ) from exc

            smeared = self.smearer.smear(coords.along_wire, coords.distance, streams.smear)
            angle = incidence_angle(raw.momentum, wire.direction)
            try:
                clusters = self.clusters.estimate(raw.edep, raw.path_length_cm, angle, streams.clusters)
            except HitDataError as exc:
                raise HitDataError(
                    f"DCHdigi: run {run} event {event} hit {i} (cellID {raw.cell_id}): {exc}"
                ) from exc

            digi, link = assemble(raw, wire, coords, smeared, clusters, index=i)
            digis.append(digi)
            links.append(link)

            if debug is not None:
                debug.hits += 1
                debug.fill("hDpw", coords.distance)
                debug.fill("hDww", distance_to_wire(coords.closest_point + smeared.dz * wire.direction, wire))
                debug.fill("hSz", smeared.dz)
                debug.fill("hSxy", smeared.dxy)
                debug.clamped_buckets += int(clusters.clamped)

        return EventDigis(digis, links, debug)

    def process_event(self, ev: SimEvent) -> Tuple[DigiEvent, Optional[DebugHistograms]]:
        out = self.process_hits(ev.hits, ev.run, ev.event)
        return DigiEvent(run=ev.run, event=ev.event, digis=out.digis, links=out.links), out.debug
