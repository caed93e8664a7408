"""
Demo terminology data: NAMASTE diagnoses, ICD-11 TM2 patterns, a few
ICD-11 Biomedicine codes, and curated mappings between them.
"""
from .repository import CodeRecord, MappingRecord


def _namaste(code, display, definition):
    return CodeRecord(code=code, display=display, definition=definition,
                      system="NAMASTE", category=code.split("-")[0])


def _tm2(code, display, definition):
    return CodeRecord(code=code, display=display, definition=definition,
                      system="ICD-11-TM2", category="TM2")


def _bio(code, display, definition):
    return CodeRecord(code=code, display=display, definition=definition,
                      system="ICD-11-BIOMEDICINE", category="biomedicine")


SEED_CODES = [
    # Ayurveda - digestive
    _namaste("AYU-DIG-001", "Agnimandya", "Digestive fire deficiency in Ayurveda"),
    _namaste("AYU-DIG-002", "Ajeerna", "Indigestion and dyspepsia"),
    _namaste("AYU-DIG-003", "Grahani", "Inflammatory bowel syndrome"),
    _namaste("AYU-DIG-004", "Amlapitta", "Acid peptic disorders"),
    # Ayurveda - respiratory
    _namaste("AYU-RES-001", "Kasaroga", "Respiratory disorders and cough"),
    _namaste("AYU-RES-002", "Shwasa", "Bronchial asthma"),
    _namaste("AYU-RES-003", "Kshayaroga", "Tuberculosis and wasting diseases"),
    # Siddha
    _namaste("SID-CIR-001", "Hrudayaroga", "Cardiac disorders in Siddha medicine"),
    _namaste("SID-DIG-001", "Gunmam", "Abdominal disorders"),
    _namaste("SID-SKN-001", "Kuttam", "Skin diseases including leprosy"),
    # Unani
    _namaste("UNA-NEU-001", "Falij", "Neurological paralysis conditions"),
    _namaste("UNA-FEV-001", "Humma", "Fever and inflammatory conditions"),
    _namaste("UNA-JOI-001", "Waja-ul-Mafasil", "Joint pain and arthritis"),
    # Ayurveda - mental health
    _namaste("AYU-MEN-001", "Unmada", "Mental disorders and psychosis"),
    _namaste("AYU-MEN-002", "Apasmara", "Epilepsy and seizure disorders"),
    # Ayurveda - gynaecology
    _namaste("AYU-GYN-001", "Yoniroga", "Gynecological disorders"),
    _namaste("AYU-GYN-002", "Artavadusti", "Menstrual disorders"),

    _tm2("TM2-DA01", "Disorder of digestive qi transformation", "Traditional medicine disorder affecting digestive function"),
    _tm2("TM2-DA02", "Stomach heat with counterflow", "Heat pattern in stomach affecting digestion"),
    _tm2("TM2-DA03", "Spleen qi deficiency syndrome", "Deficient spleen qi affecting digestion"),
    _tm2("TM2-DA04", "Liver qi stagnation affecting stomach", "Liver qi stagnation causing digestive issues"),
    _tm2("TM2-RE01", "Lung qi deficiency", "Deficient lung qi causing respiratory symptoms"),
    _tm2("TM2-RE02", "Wind-cold affecting lungs", "External wind-cold pathogen affecting respiratory system"),
    _tm2("TM2-RE03", "Phlegm-heat in lungs", "Phlegm-heat pattern causing respiratory disorders"),
    _tm2("TM2-HE01", "Heart qi stagnation", "Stagnant heart qi affecting circulation"),
    _tm2("TM2-HE02", "Heart blood stasis", "Blood stasis pattern in cardiovascular system"),
    _tm2("TM2-NE01", "Wind stroke pattern", "Wind pathogen causing neurological symptoms"),
    _tm2("TM2-NE02", "Kidney essence deficiency affecting brain", "Kidney essence deficiency causing neurological issues"),
    _tm2("TM2-MH01", "Heart spirit disturbance", "Disturbed heart spirit causing mental symptoms"),
    _tm2("TM2-MH02", "Phlegm misting the mind", "Phlegm pathology affecting mental clarity"),

    _bio("K59.1", "Diarrhoea, unspecified", "Digestive system disorder"),
    _bio("J44.1", "Chronic obstructive pulmonary disease with acute exacerbation", "Respiratory system disorder"),
    _bio("I25.9", "Chronic ischaemic heart disease, unspecified", "Cardiovascular system disorder"),
]


def _map(source, target, equivalence, confidence, target_system="ICD-11-TM2"):
    return MappingRecord(
        source_code=source,
        source_system="NAMASTE",
        target_code=target,
        target_system=target_system,
        equivalence=equivalence,
        confidence=confidence,
        provenance="seed",
    )


SEED_MAPPINGS = [
    _map("AYU-DIG-001", "TM2-DA01", "equivalent", 95),
    _map("AYU-DIG-002", "TM2-DA02", "equivalent", 90),
    _map("AYU-DIG-003", "TM2-DA03", "wider", 85),
    _map("AYU-DIG-004", "TM2-DA04", "equivalent", 92),
    _map("AYU-RES-001", "TM2-RE01", "equivalent", 88),
    _map("AYU-RES-002", "TM2-RE02", "narrower", 87),
    _map("AYU-RES-003", "TM2-RE03", "wider", 83),
    _map("SID-CIR-001", "TM2-HE01", "equivalent", 91),
    _map("SID-CIR-001", "TM2-HE02", "narrower", 78),
    _map("UNA-NEU-001", "TM2-NE01", "equivalent", 89),
    _map("AYU-MEN-002", "TM2-NE02", "wider", 82),
    _map("AYU-MEN-001", "TM2-MH01", "equivalent", 86),
    _map("AYU-MEN-001", "TM2-MH02", "narrower", 79),
    # Cross-system mappings to Biomedicine
    _map("AYU-DIG-002", "K59.1", "wider", 74, target_system="ICD-11-BIOMEDICINE"),
    _map("AYU-RES-002", "J44.1", "narrower", 71, target_system="ICD-11-BIOMEDICINE"),
    _map("SID-CIR-001", "I25.9", "wider", 68, target_system="ICD-11-BIOMEDICINE"),
]
