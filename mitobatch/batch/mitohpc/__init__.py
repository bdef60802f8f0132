"""
MitoHPC: mitochondrial heteroplasmy and variant calling from aligned reads. One invocation of
`mitohpc.sh` per sample directory, producing Mutect2 calls filtered at three heteroplasmy
thresholds.
"""
from mitobatch.batch.common.profile_exporting import PipelineProfile
from mitobatch.batch.manifest import ManifestBuilder
from mitobatch.batch.invocation import PipelineInvocation
from mitobatch.batch.merger import ResultMerger

NAME = 'mitohpc'
IMAGE = 'docker://ghcr.io/jlanej/mitohpc:main'
EXECUTABLE = 'mitohpc.sh'
THRESHOLDS = ('03', '05', '10')

components = PipelineProfile(
    name=NAME,
    image=IMAGE,
    executable=EXECUTABLE,
    input_kinds=('bams', 'crams'),
    input_extensions=('.bam', '.cram'),
    categories=tuple(f'mutect2.mutect2.{threshold}' for threshold in THRESHOLDS),
    record_suffix='vcf',
    generator=ManifestBuilder,
    unit_job=PipelineInvocation,
    integrator=ResultMerger,
)
