import os
import hashlib
import tempfile
import requests

from openclawd.modules import log
from openclawd.modules.errors import DownloadError


# -------------------------
# Sistema de arquivos
# -------------------------
def ensure_dir(path: str):
    """Cria diretório se não existir"""
    os.makedirs(path, exist_ok=True)


def write_file_atomic(path: str, content: str, mode: int | None = None, errors: str = "strict"):
    """
    Substitui o arquivo inteiro: grava em temporário no mesmo diretório e
    faz os.replace(). Um leitor nunca vê o arquivo pela metade.
    Com errors="surrogateescape" bytes inválidos lidos do original voltam intactos.
    """
    directory = os.path.dirname(path) or "."
    ensure_dir(directory)
    fd, tmp = tempfile.mkstemp(prefix=".tmp-", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", errors=errors) as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.remove(tmp)
        raise
    return path


# -------------------------
# Download e cache
# -------------------------
def download(url: str, dest: str, expected_sha256: str | None = None, timeout: float = 60):
    """Baixa arquivo com cache e checagem opcional de SHA256"""
    ensure_dir(os.path.dirname(dest) or ".")

    if os.path.isfile(dest):
        log.info("Arquivo já existe em cache: %s", dest)
        if expected_sha256 and not verify_sha256(dest, expected_sha256):
            log.error("Hash incorreto para %s, baixando novamente...", dest)
            os.remove(dest)
        else:
            return dest

    log.info("Baixando %s → %s", url, dest)
    partial = dest + ".part"
    try:
        with requests.get(url, stream=True, timeout=timeout) as r:
            r.raise_for_status()
            with open(partial, "wb") as f:
                for chunk in r.iter_content(chunk_size=1 << 16):
                    f.write(chunk)
    except (requests.RequestException, OSError) as e:
        if os.path.exists(partial):
            os.remove(partial)
        raise DownloadError(f"Falha ao baixar {url}: {e}") from e

    if expected_sha256 and not verify_sha256(partial, expected_sha256):
        os.remove(partial)
        raise DownloadError(f"SHA256 inválido para {url}")

    os.replace(partial, dest)
    return dest


def verify_sha256(path: str, expected: str) -> bool:
    """Verifica SHA256 de um arquivo"""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    digest = h.hexdigest()
    return digest == expected.lower()
