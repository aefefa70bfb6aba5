from django.db import transaction
from django.dispatch import Signal

# Se envían solo después del commit; el core no conoce el transporte de avisos.
movimiento_registrado = Signal()
produccion_registrada = Signal()
venta_registrada = Signal()


def publicar_al_confirmar(signal: Signal, sender, **payload) -> None:
    transaction.on_commit(lambda: signal.send(sender=sender, **payload))
