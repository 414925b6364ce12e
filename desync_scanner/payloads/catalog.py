"""Static dispatch from check type to payload generator."""

from typing import Dict, List

from desync_scanner.core.exceptions import PayloadGenerationError
from desync_scanner.core.models import CandidatePayload, CheckType
from desync_scanner.payloads.generator import GeneratorFn, RequestParts
from desync_scanner.payloads.classic import generate_cl_te, generate_te_cl, generate_te_te
from desync_scanner.payloads.http2 import generate_h2, generate_h2c


CATALOG: Dict[CheckType, GeneratorFn] = {
    CheckType.CL_TE: generate_cl_te,
    CheckType.TE_CL: generate_te_cl,
    CheckType.TE_TE: generate_te_te,
    CheckType.H2C: generate_h2c,
    CheckType.H2: generate_h2,
}


def generate(check_type: CheckType, parts: RequestParts) -> List[CandidatePayload]:
    """Build the ordered variant list for one attack family.

    Raises:
        PayloadGenerationError: If no generator is registered for the type
    """
    try:
        generator = CATALOG[check_type]
    except KeyError:
        raise PayloadGenerationError(str(check_type), "no generator registered")
    return generator(parts)


def variant_counts(parts: RequestParts) -> Dict[CheckType, int]:
    """Number of variants each family produces for the given inputs."""
    return {check_type: len(generate(check_type, parts)) for check_type in CATALOG}
