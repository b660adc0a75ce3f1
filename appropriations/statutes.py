"""Statute and regulation citations used in compliance messages."""

PURPOSE_STATUTE = "31 U.S.C. § 1301(a)"
PTA_STATUTE = "31 U.S.C. § 1301 (Purpose, Time, Amount restrictions)"
BONA_FIDE_NEED_STATUTE = "31 U.S.C. § 1502(a)"
OVEROBLIGATION_STATUTE = "31 U.S.C. § 1341(a)(1)(A)"
ADVANCE_OBLIGATION_STATUTE = "31 U.S.C. § 1341(a)(1)(B)"
VOLUNTARY_SERVICES_STATUTE = "31 U.S.C. § 1342"
APPORTIONMENT_STATUTE = "31 U.S.C. § 1517"
AUGMENTATION_STATUTE = "31 U.S.C. § 3302 / § 1532"
MULTI_YEAR_CONTRACT_STATUTE = "10 U.S.C. § 2306b"
FULL_FUNDING_POLICY = "DoD FMR Volume 2A, Chapter 1 (Full Funding Policy)"
FISCAL_YEAR_STATUTE = "31 U.S.C. § 1102"
REPROGRAMMING_POLICY = "DoD FMR Volume 3, Chapter 6 (Reprogramming)"

STATUTES = {
    "purpose": PURPOSE_STATUTE,
    "pta": PTA_STATUTE,
    "bona_fide_need": BONA_FIDE_NEED_STATUTE,
    "overobligation": OVEROBLIGATION_STATUTE,
    "advance_obligation": ADVANCE_OBLIGATION_STATUTE,
    "voluntary_services": VOLUNTARY_SERVICES_STATUTE,
    "apportionment": APPORTIONMENT_STATUTE,
    "augmentation": AUGMENTATION_STATUTE,
    "multi_year_contract": MULTI_YEAR_CONTRACT_STATUTE,
    "full_funding": FULL_FUNDING_POLICY,
    "fiscal_year": FISCAL_YEAR_STATUTE,
    "reprogramming": REPROGRAMMING_POLICY,
}
