from __future__ import annotations

import os
from pathlib import Path

import platformdirs
import yaml
from dotenv import load_dotenv

APP_NAME = "einvoice"
CONFIG_DIR_ENV = "EINVOICE_CONFIG_DIR"


def _resolve_dir(env_var: str, default_subdir: str) -> Path:
    """Resolve a directory from env var, repo layout, or platform default.

    Priority: 1) env var, 2) dev repo layout, 3) platformdirs user directory.
    """
    from_env = os.environ.get(env_var)
    if from_env:
        return Path(from_env)
    # Development layout: src/einvoice/config.py -> ../../.. = project root
    project_root = Path(__file__).resolve().parent.parent.parent
    candidate = project_root / default_subdir
    if candidate.is_dir():
        return candidate
    return Path(platformdirs.user_config_dir(APP_NAME))


def _resolve_config_dir_for_dotenv() -> Path | None:
    """Resolve config dir for .env loading without depending on env vars from .env itself.

    Same lookup as get_config_dir, but a platformdirs directory that does
    not exist yet gives None.
    """
    path = _resolve_dir(CONFIG_DIR_ENV, "config")
    if os.environ.get(CONFIG_DIR_ENV) or path.is_dir():
        return path
    return None


# Load .env: cwd first (highest priority), then config dir (won't override)
load_dotenv()
_cfg_dir = _resolve_config_dir_for_dotenv()
if _cfg_dir is not None:
    load_dotenv(_cfg_dir / ".env")


def get_config_dir() -> Path:
    """Resolve the config directory. Re-evaluated on each call to pick up env changes."""
    return _resolve_dir(CONFIG_DIR_ENV, "config")


# --- XML namespaces ---

NS_RSM = "urn:un:unece:uncefact:data:standard:CrossIndustryInvoice:100"
NS_RAM = "urn:un:unece:uncefact:data:standard:ReusableAggregateBusinessInformationEntity:100"
NS_UDT = "urn:un:unece:uncefact:data:standard:UnqualifiedDataType:100"
NS_QDT = "urn:un:unece:uncefact:data:standard:QualifiedDataType:100"

CII_NSMAP = {"rsm": NS_RSM, "ram": NS_RAM, "udt": NS_UDT, "qdt": NS_QDT}

UBL_INVOICE_NS = "urn:oasis:names:specification:ubl:schema:xsd:Invoice-2"
UBL_CREDIT_NOTE_NS = "urn:oasis:names:specification:ubl:schema:xsd:CreditNote-2"
NS_CAC = "urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2"
NS_CBC = "urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2"

UBL_NSMAP = {"cac": NS_CAC, "cbc": NS_CBC}

# Document type codes (BT-3) written as a UBL CreditNote
UBL_CREDIT_NOTE_TYPES = frozenset({381, 396})

# --- Specification identifiers (BT-24) ---

SPEC_FACTURX_MINIMUM = "urn:factur-x.eu:1p0:minimum"
SPEC_FACTURX_BASICWL = "urn:factur-x.eu:1p0:basicwl"
SPEC_FACTURX_BASIC = "urn:cen.eu:en16931:2017#compliant#urn:factur-x.eu:1p0:basic"
SPEC_FACTURX_EXTENDED = "urn:cen.eu:en16931:2017#conformant#urn:factur-x.eu:1p0:extended"
SPEC_EN16931 = "urn:cen.eu:en16931:2017"
SPEC_PEPPOL_BILLING_30 = "urn:cen.eu:en16931:2017#compliant#urn:fdc:peppol.eu:2017:poacc:billing:3.0"
SPEC_XRECHNUNG_30 = "urn:cen.eu:en16931:2017#compliant#urn:xeinkauf.de:kosit:xrechnung_3.0"

# Business process identifier (BT-23)
BP_PEPPOL_BILLING_01 = "urn:fdc:peppol.eu:2017:poacc:billing:01:1.0"
BP_PEPPOL_PATTERN = r"urn:fdc:peppol\.eu:2017:poacc:billing:\d{2}:1\.0"

# Categories whose breakdown needs an exemption reason (BT-120/BT-121)
EXEMPT_CATEGORIES = frozenset({"AE", "E", "G", "K", "O"})

DEFAULT_SETTINGS: dict = {
    "log_level": "WARNING",
    "exemption_reasons": {
        "AE": "Reverse charge",
        "E": "Exempt from VAT",
        "G": "Export outside the EU",
        "K": "Intra-community supply",
        "O": "Not subject to VAT",
    },
}


# --- YAML config ---


def load_yaml(path: Path) -> dict:
    """Load and parse a YAML file, returning the top-level dict."""
    return yaml.safe_load(path.read_text(encoding="utf-8")) or {}


def load_settings() -> dict:
    """Load settings.yaml from the config dir merged over the defaults.

    EINVOICE_LOG_LEVEL overrides the log level from any file.
    """
    settings = {
        "log_level": DEFAULT_SETTINGS["log_level"],
        "exemption_reasons": dict(DEFAULT_SETTINGS["exemption_reasons"]),
    }
    path = get_config_dir() / "settings.yaml"
    if path.is_file():
        data = load_yaml(path)
        if "log_level" in data:
            settings["log_level"] = str(data["log_level"]).upper()
        settings["exemption_reasons"].update(data.get("exemption_reasons") or {})
    level = os.environ.get("EINVOICE_LOG_LEVEL")
    if level:
        settings["log_level"] = level.upper()
    return settings
