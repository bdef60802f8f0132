"""Interfaces for components in the batch."""

from mitobatch.batch.component_interfaces.job_generator import JobGenerator
from mitobatch.batch.component_interfaces.unit_job import UnitJob
from mitobatch.batch.component_interfaces.integrator import Integrator
