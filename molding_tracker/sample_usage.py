"""Demonstration script for the injection-molding production tracker."""

from __future__ import annotations

from pprint import pprint

from . import ManualClock, TrackerService


def main() -> None:
    clock = ManualClock()
    tracker = TrackerService(clock=clock)

    # Cadastros
    operator = tracker.register_employee(name="Ana Souza", registration="OP-0142")
    injector = tracker.register_machine(name="Romi EN 150", code="INJ-03")
    cap_mold = tracker.register_mold(
        name="Matriz Tampa 28mm",
        code="MT-028",
        piece_name="Tampa rosca 28mm",
        pieces_per_cycle=4,
        cycle_time_seconds=24,
    )
    polypropylene = tracker.register_raw_material(name="Polipropileno H503", code="PP-H503")
    polyethylene = tracker.register_raw_material(name="PEAD HC7260", code="PE-7260")
    tracker.link_mold_material(cap_mold.id, polypropylene.id, cycle_time_seconds=22)
    tracker.link_mold_material(cap_mold.id, polyethylene.id, cycle_time_seconds=30)
    maintenance = tracker.register_pause_reason(
        name="Manutenção", description="Ajuste ou reparo da matriz"
    )

    # Turno de produção
    session = tracker.start_session(
        operator.id,
        injector.id,
        cap_mold.id,
        polypropylene.id,
        notes="Lote 2024-118",
    )
    clock.advance(minutes=95)
    tracker.pause_session(session.id, maintenance.id, note="Troca de bico")
    clock.advance(minutes=20)

    print("Métricas durante a pausa")
    pprint(tracker.session_metrics(session.id).to_dict())

    tracker.resume_session(session.id, new_material_id=polyethylene.id)
    clock.advance(minutes=125)
    tracker.end_session(session.id, total_pieces=2350)

    print("\nHistórico de pausas")
    for pause in tracker.session_pauses(session.id):
        reason = tracker.pause_reasons.get(pause.reason_id) if pause.reason_id else None
        print(
            f" - {pause.start_time:%H:%M} - {pause.end_time:%H:%M}"
            f" ({pause.duration_minutes} min) {reason.name if reason else ''}"
        )
        if pause.new_material_id:
            material = tracker.raw_materials.get(pause.new_material_id)
            print(f"   Troca de material: {material.name}")

    print("\nMétricas finais")
    pprint(tracker.session_metrics(session.id).to_dict())


if __name__ == "__main__":  # pragma: no cover - manual execution
    main()
