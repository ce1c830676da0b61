"""
Servicios de negocio del room grid de desayunos:
- reconciler: ocupación por habitación a partir del snapshot PMS
- ledger: registros de consumo por habitación/día
- projector: vista RoomBreakfastStatus
- sync_orchestrator: PMS → cache de huéspedes
- consumption_handler: marcar desayuno consumido + cargo al PMS
- reports: reporte diario y analytics
"""
