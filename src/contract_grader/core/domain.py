"""Business domain detection from an API document's vocabulary.

Counts whole-word keyword hits per domain in the document's descriptive text
(title, descriptions, tags, paths, operation ids, schema and property names),
boosts domains whose characteristic resource paths appear, and reports the
strongest signal with a confidence that reflects how clearly it won.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from .compliance import compliance_for_domain
from .models import DomainDetection
from .spec_node import OpenAPIDocument
from .weights import DEFAULT_DOMAIN

FALLBACK_CONFIDENCE = 0.5
MAX_EVIDENCE = 5

DOMAIN_INDICATORS: dict[str, tuple[str, ...]] = {
    "finance": (
        "payment", "transaction", "account", "balance", "credit", "debit",
        "loan", "mortgage", "investment", "portfolio", "trading", "banking",
        "card", "ach", "wire", "swift", "iban", "routing", "currency",
        "exchange", "rate", "interest", "dividend", "stock", "bond",
        "kyc", "aml", "compliance", "audit", "ledger", "reconciliation",
    ),
    "healthcare": (
        "patient", "medical", "health", "clinical", "diagnosis", "treatment",
        "prescription", "medication", "drug", "pharmacy", "hospital", "doctor",
        "physician", "nurse", "appointment", "procedure", "surgery", "lab",
        "test", "result", "vitals", "symptom", "condition", "disease",
        "insurance", "claim", "coverage", "hipaa", "phi", "ehr", "emr",
    ),
    "ecommerce": (
        "product", "cart", "checkout", "order", "shipping", "delivery",
        "inventory", "catalog", "price", "discount", "coupon", "promotion",
        "customer", "review", "rating", "wishlist", "recommendation",
        "payment", "refund", "return", "merchant", "vendor", "marketplace",
        "sku", "variant", "category", "brand", "store", "shop",
    ),
    "education": (
        "student", "teacher", "course", "class", "lesson", "assignment",
        "grade", "score", "exam", "test", "quiz", "curriculum", "syllabus",
        "enrollment", "registration", "attendance", "transcript", "diploma",
        "certificate", "degree", "school", "university", "college", "campus",
        "semester", "term", "academic", "lecture", "tutorial", "homework",
    ),
    "government": (
        "citizen", "resident", "permit", "license", "registration", "tax",
        "benefit", "service", "application", "approval", "case", "record",
        "document", "certificate", "id", "passport", "visa", "immigration",
        "voting", "election", "policy", "regulation", "compliance", "audit",
        "public", "municipal", "federal", "state", "agency", "department",
    ),
    "logistics": (
        "shipment", "cargo", "freight", "container", "package", "parcel",
        "tracking", "delivery", "route", "carrier", "transport", "warehouse",
        "inventory", "stock", "supply", "chain", "distribution", "fulfillment",
        "manifest", "customs", "import", "export", "logistics", "fleet",
        "vehicle", "driver", "dispatch", "scheduling", "dock", "terminal",
    ),
    "manufacturing": (
        "production", "assembly", "factory", "plant", "equipment", "machine",
        "process", "workflow", "quality", "inspection", "defect", "batch",
        "lot", "serial", "part", "component", "material", "raw", "finished",
        "goods", "inventory", "supply", "vendor", "procurement", "order",
        "maintenance", "downtime", "efficiency", "yield", "capacity", "shift",
    ),
    "media": (
        "content", "media", "video", "audio", "image", "stream", "broadcast",
        "channel", "program", "episode", "series", "movie", "music", "song",
        "album", "artist", "publisher", "editor", "article", "post", "blog",
        "news", "publication", "subscription", "viewer", "listener", "audience",
        "rating", "review", "comment", "share", "like", "playlist",
    ),
    "telecommunications": (
        "phone", "call", "sms", "message", "voip", "network", "carrier",
        "plan", "subscription", "data", "usage", "roaming", "coverage",
        "signal", "tower", "cell", "bandwidth", "speed", "connection",
        "number", "line", "device", "sim", "esim", "activation", "porting",
        "billing", "minutes", "text", "international", "domestic", "prepaid",
    ),
    "travel": (
        "booking", "reservation", "flight", "hotel", "room", "accommodation",
        "airline", "airport", "departure", "arrival", "passenger", "ticket",
        "itinerary", "trip", "vacation", "destination", "travel", "tour",
        "rental", "car", "vehicle", "cruise", "ship", "train", "bus",
        "checkin", "checkout", "luggage", "baggage", "seat", "upgrade",
    ),
    "realestate": (
        "property", "listing", "house", "apartment", "condo", "building",
        "real", "estate", "rent", "lease", "buy", "sell", "mortgage",
        "agent", "broker", "owner", "tenant", "landlord", "inspection",
        "appraisal", "value", "price", "square", "feet", "bedroom", "bathroom",
        "location", "neighborhood", "amenity", "viewing", "showing", "offer",
    ),
    "automotive": (
        "vehicle", "car", "auto", "truck", "motorcycle", "vin", "make",
        "model", "year", "engine", "transmission", "mileage", "fuel",
        "maintenance", "service", "repair", "part", "dealer", "manufacturer",
        "warranty", "insurance", "registration", "license", "driver", "test",
        "drive", "finance", "lease", "trade", "inspection", "diagnostic",
    ),
    "energy": (
        "power", "energy", "electricity", "gas", "oil", "renewable", "solar",
        "wind", "nuclear", "coal", "grid", "utility", "consumption", "usage",
        "meter", "reading", "bill", "rate", "tariff", "peak", "demand",
        "generation", "transmission", "distribution", "outage", "restoration",
        "efficiency", "conservation", "carbon", "emission", "sustainability",
    ),
    "agriculture": (
        "farm", "crop", "harvest", "planting", "seed", "soil", "fertilizer",
        "pesticide", "irrigation", "weather", "climate", "yield", "production",
        "livestock", "cattle", "poultry", "dairy", "grain", "fruit", "vegetable",
        "organic", "sustainable", "equipment", "machinery", "tractor", "field",
        "acre", "hectare", "season", "market", "commodity", "price",
    ),
}

_KEYWORD_PATTERNS = {
    domain: [(kw, re.compile(rf"\b{re.escape(kw)}\b")) for kw in keywords]
    for domain, keywords in DOMAIN_INDICATORS.items()
}

# (domain, path pattern, evidence label, weight when no keyword signal exists)
PATH_BOOSTS: tuple[tuple[str, re.Pattern, str, float | None], ...] = (
    ("finance", re.compile(r"/(accounts|transactions|payments|cards)"), "Financial path patterns", 60.0),
    ("healthcare", re.compile(r"/(patients|appointments|prescriptions|medical)"), "Healthcare path patterns", None),
    ("ecommerce", re.compile(r"/(products|cart|checkout|orders)"), "E-commerce path patterns", None),
)
PATH_BOOST_FACTOR = 1.5


@dataclass
class DomainSignal:
    domain: str
    weight: float
    evidence: list[str] = field(default_factory=list)


def extract_text(raw: Any) -> str:
    """Lower-cased descriptive text of a document."""
    doc = OpenAPIDocument(raw)
    texts: list[str] = [doc.info.get("title").text(), doc.info.get("description").text()]

    for tag in doc.root.get("tags"):
        texts.append(tag.get("name").text())
        texts.append(tag.get("description").text())

    for path in doc.path_keys():
        texts.append(path)
    for op in doc.operations():
        for key in ("summary", "description", "operationId"):
            texts.append(op.node.get(key).text())

    for name, schema in doc.components.get("schemas").items():
        texts.append(name)
        texts.append(schema.get("description").text())
        texts.extend(schema.get("properties").keys())

    return " ".join(t for t in texts if t).lower()


def keyword_signals(text: str) -> list[DomainSignal]:
    signals = []
    for domain, patterns in _KEYWORD_PATTERNS.items():
        evidence: list[str] = []
        matches = 0
        for keyword, pattern in patterns:
            hits = len(pattern.findall(text))
            if hits:
                matches += hits
                if len(evidence) < MAX_EVIDENCE:
                    evidence.append(keyword)
        if matches:
            signals.append(DomainSignal(domain, min(matches / 10, 1.0) * 100, evidence))
    return signals


def apply_path_boosts(paths: list[str], signals: list[DomainSignal]) -> None:
    by_domain = {s.domain: s for s in signals}
    for domain, pattern, label, standalone_weight in PATH_BOOSTS:
        if not any(pattern.search(p) for p in paths):
            continue
        existing = by_domain.get(domain)
        if existing is not None:
            existing.weight *= PATH_BOOST_FACTOR
            existing.evidence.append(label)
        elif standalone_weight is not None:
            signal = DomainSignal(domain, standalone_weight, [f"{label} detected"])
            signals.append(signal)
            by_domain[domain] = signal


def _confidence(signals: list[DomainSignal]) -> float:
    top = signals[0]
    confidence = min(top.weight / 100, 1.0)
    if len(signals) > 1:
        separation = top.weight - signals[1].weight
        if separation < 10:
            confidence *= 0.8
        elif separation > 30:
            confidence = min(confidence * 1.2, 0.95)
    return round(confidence, 2)


def detect_domain(raw: Any) -> DomainDetection:
    """Guess the business domain of a parsed document.

    Falls back to ``general`` with confidence 0.5 when no indicator matches.
    """
    doc = OpenAPIDocument(raw)
    signals = keyword_signals(extract_text(raw))
    apply_path_boosts(doc.path_keys(), signals)
    # Stable sort keeps table order among equal weights.
    signals.sort(key=lambda s: -s.weight)

    if not signals:
        return DomainDetection(
            domain=DEFAULT_DOMAIN,
            confidence=FALLBACK_CONFIDENCE,
            indicators=["No specific domain indicators found"],
            compliance_requirements=list(compliance_for_domain(DEFAULT_DOMAIN)),
        )

    top = signals[0]
    return DomainDetection(
        domain=top.domain,
        confidence=_confidence(signals),
        indicators=top.evidence,
        secondary_domains=[
            {"domain": s.domain, "confidence": round(min(s.weight / 100, 1.0), 2)}
            for s in signals[1:4]
        ],
        compliance_requirements=list(compliance_for_domain(top.domain)),
    )
