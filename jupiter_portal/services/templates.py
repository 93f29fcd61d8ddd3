"""Project type catalogue and phase templates for drafting projects."""
from jupiter_portal.exceptions import ValidationError
from jupiter_portal.services.validation import check_date_order, parse_date, parse_hours

PROJECT_TYPES = {
    'residential_single': 'Residential - Single Family',
    'residential_multi': 'Residential - Multi-Family',
    'commercial_retail': 'Commercial - Retail',
    'commercial_office': 'Commercial - Office',
    'commercial_mixed': 'Commercial - Mixed Use',
    'institutional': 'Institutional',
    'industrial': 'Industrial',
    'renovation': 'Renovation/Addition',
}

DEFAULT_TEMPLATE = 'standard'
CUSTOM_TEMPLATE = 'custom'

PHASE_TEMPLATES = {
    'standard': [
        {'name': 'Preliminary Design', 'code': 'PD', 'estimated_hours': 40,
         'description': 'Initial concept and feasibility studies'},
        {'name': 'Design Development', 'code': 'DD', 'estimated_hours': 80,
         'description': 'Refine design and material selection'},
        {'name': 'Construction Documents', 'code': 'CD', 'estimated_hours': 120,
         'description': 'Detailed drawings and specifications'},
        {'name': 'Permit & Approvals', 'code': 'PA', 'estimated_hours': 20,
         'description': 'Submit for building permits'},
        {'name': 'Bidding & Negotiation', 'code': 'BN', 'estimated_hours': 15,
         'description': 'Contractor selection process'},
        {'name': 'Construction Administration', 'code': 'CA', 'estimated_hours': 60,
         'description': 'Site visits and RFI responses'},
        {'name': 'Project Closeout', 'code': 'PC', 'estimated_hours': 10,
         'description': 'Final documentation and handover'},
    ],
    'fast_track': [
        {'name': 'Schematic Design', 'code': 'SD', 'estimated_hours': 60,
         'description': 'Combined preliminary and design development'},
        {'name': 'Construction Documents', 'code': 'CD', 'estimated_hours': 100,
         'description': 'Expedited drawing production'},
        {'name': 'Permit & Construction', 'code': 'PC', 'estimated_hours': 40,
         'description': 'Parallel permit and construction start'},
        {'name': 'Construction Administration', 'code': 'CA', 'estimated_hours': 50,
         'description': 'Active site supervision'},
    ],
    'renovation': [
        {'name': 'Existing Conditions', 'code': 'EC', 'estimated_hours': 30,
         'description': 'Survey and document existing building'},
        {'name': 'Design Development', 'code': 'DD', 'estimated_hours': 60,
         'description': 'Renovation design and planning'},
        {'name': 'Construction Documents', 'code': 'CD', 'estimated_hours': 80,
         'description': 'Detailed renovation drawings'},
        {'name': 'Permit & Approvals', 'code': 'PA', 'estimated_hours': 25,
         'description': 'Building and historic approvals'},
        {'name': 'Construction Phase', 'code': 'CP', 'estimated_hours': 70,
         'description': 'Phased construction oversight'},
    ],
}


def build_phase_specs(template: str = None, custom_phases: list = None) -> list[dict]:
    """Assemble the phase list for a new project.

    Args:
        template: Template key (standard, fast_track, renovation). Ignored
            when custom_phases is given; defaults to standard.
        custom_phases: Ad hoc list of dicts with at least ``name``;
            optional code, description, estimated_hours,
            assigned_staff_id, start_date, end_date.

    Returns:
        List of phase dicts in order, ready to become Phase rows.

    Raises:
        ValidationError: Unknown template, a malformed custom phase, or
            a custom phase ending before it starts.
    """
    if custom_phases:
        if not isinstance(custom_phases, list):
            raise ValidationError('phases must be a list', details={'phases': 'must be a list'})
        source = custom_phases
    else:
        key = template or DEFAULT_TEMPLATE
        if not isinstance(key, str) or key not in PHASE_TEMPLATES:
            raise ValidationError(
                f'Unknown phase template: {key}. Must be one of: {list(PHASE_TEMPLATES)}',
                details={'template': key},
            )
        source = PHASE_TEMPLATES[key]

    specs = []
    for i, phase in enumerate(source):
        if not isinstance(phase, dict):
            raise ValidationError(f'Phase {i + 1} must be an object', details={'phases': i})
        name = phase.get('name')
        if not isinstance(name, str) or not name.strip():
            raise ValidationError(
                f'Phase {i + 1} needs a name', details={'phases': i}
            )
        for field in ('code', 'description', 'assigned_staff_id'):
            if phase.get(field) is not None and not isinstance(phase[field], str):
                raise ValidationError(
                    f'Phase {i + 1} {field} must be text', details={'phases': i, 'field': field}
                )
        start_date = parse_date(phase.get('start_date'), 'start_date')
        end_date = parse_date(phase.get('end_date'), 'end_date')
        check_date_order(start_date, end_date, 'start_date', 'end_date')
        specs.append({
            'name': name.strip(),
            'code': phase.get('code') or None,
            'description': phase.get('description') or None,
            'estimated_hours': parse_hours(
                phase.get('estimated_hours', phase.get('estimatedHours')),
                'estimated_hours',
            ),
            'assigned_staff_id': phase.get('assigned_staff_id') or None,
            'start_date': start_date,
            'end_date': end_date,
        })
    return specs


def template_name(template: str = None, custom_phases: list = None) -> str:
    """Value stored in Project.template_used."""
    if custom_phases:
        return CUSTOM_TEMPLATE
    return template or DEFAULT_TEMPLATE


def catalogue() -> dict:
    """Project types and phase templates for the create-project form."""
    return {
        'project_types': [{'value': k, 'label': v} for k, v in PROJECT_TYPES.items()],
        'templates': {
            key: [dict(phase) for phase in phases]
            for key, phases in PHASE_TEMPLATES.items()
        },
    }
