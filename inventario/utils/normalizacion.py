from unidecode import unidecode


def normalizar_nombre(texto: str | None) -> str:
    if not texto:
        return ""
    return " ".join(unidecode(str(texto)).lower().split())
