"""
tiled_gravity.cuda_kernels
CUDA kernels for softened direct-summation gravity on a (7, N) particle layout.

Three tilings of the same sum:
- gravity_global  : one thread per target, all sources read from global memory
- gravity_tiled   : one thread per target, sources staged tile by tile in
                    dynamic shared memory
- gravity_columns : q threads per target, each summing p/q sources of every
                    tile, partial sums merged with atomicAdd

Arrays are flat, row-major: source is (4, Ns) -> s[f*Ns + j], target is
(7, Nt) -> t[f*Nt + i]. Templates are formatted with the entries of
``TYPE_SPECS`` before compilation, hence the doubled braces.
"""

# ============================================================================
# SHARED DEVICE FUNCTION
# ============================================================================

_INTERACTION = r'''
extern "C" __device__ __forceinline__
void interaction(
    {T} tx, {T} ty, {T} tz,
    {T} sx, {T} sy, {T} sz, {T} sm,
    {T} eps2,
    {T}* ax, {T}* ay, {T}* az
) {{
    {T} r_1 = sx - tx;
    {T} r_2 = sy - ty;
    {T} r_3 = sz - tz;
    {T} r_sqr = r_1*r_1 + r_2*r_2 + r_3*r_3 + eps2;
    {T} r_cube = r_sqr*r_sqr*r_sqr;
    {T} mag = sm / {SQRT}(r_cube);

    *ax = r_1*mag;
    *ay = r_2*mag;
    *az = r_3*mag;
}}
'''

# ============================================================================
# VARIANT A: global memory, one thread per target
# ============================================================================

_GLOBAL_KERNEL_TEMPLATE = _INTERACTION + r'''
extern "C" __global__
void gravity_global(
    const {T}* __restrict__ s,
    {T}* __restrict__ t,
    int s_size,
    int t_size,
    {T} eps2
) {{
    int i = blockIdx.x * blockDim.x + threadIdx.x;
    if (i >= t_size) return;

    {T} tx = t[0*t_size + i];
    {T} ty = t[1*t_size + i];
    {T} tz = t[2*t_size + i];

    for (int j = 0; j < s_size; j++) {{
        {T} ax, ay, az;
        interaction(tx, ty, tz,
                    s[0*s_size + j], s[1*s_size + j], s[2*s_size + j], s[3*s_size + j],
                    eps2, &ax, &ay, &az);
        t[4*t_size + i] += ax;
        t[5*t_size + i] += ay;
        t[6*t_size + i] += az;
    }}
}}
'''

# ============================================================================
# VARIANT B: shared-memory tiles, one thread per target
# ============================================================================

_TILED_KERNEL_TEMPLATE = _INTERACTION + r'''
extern "C" __global__
void gravity_tiled(
    const {T}* __restrict__ s,
    {T}* __restrict__ t,
    int s_size,
    int t_size,
    {T} eps2
) {{
    extern __shared__ unsigned char sh_raw[];
    {T}* sh_mem = reinterpret_cast<{T}*>(sh_raw);  // (4, tile_dim)

    int ithread = threadIdx.x;
    int tile_dim = blockDim.x;
    int itarget = blockIdx.x * tile_dim + ithread;

    {T} tx = t[0*t_size + itarget];
    {T} ty = t[1*t_size + itarget];
    {T} tz = t[2*t_size + itarget];

    int n_tiles = s_size / tile_dim;

    {T} acc1 = 0;
    {T} acc2 = 0;
    {T} acc3 = 0;

    for (int itile = 0; itile < n_tiles; itile++) {{
        // Each thread stages the source matching its index
        int j = itile * tile_dim + ithread;
        sh_mem[0*tile_dim + ithread] = s[0*s_size + j];
        sh_mem[1*tile_dim + ithread] = s[1*s_size + j];
        sh_mem[2*tile_dim + ithread] = s[2*s_size + j];
        sh_mem[3*tile_dim + ithread] = s[3*s_size + j];
        __syncthreads();

        for (int k = 0; k < tile_dim; k++) {{
            {T} ax, ay, az;
            interaction(tx, ty, tz,
                        sh_mem[0*tile_dim + k], sh_mem[1*tile_dim + k],
                        sh_mem[2*tile_dim + k], sh_mem[3*tile_dim + k],
                        eps2, &ax, &ay, &az);
            acc1 += ax;
            acc2 += ay;
            acc3 += az;
        }}
        // Nobody restages until the whole block is done reading
        __syncthreads();
    }}

    t[4*t_size + itarget] += acc1;
    t[5*t_size + itarget] += acc2;
    t[6*t_size + itarget] += acc3;
}}
'''

# ============================================================================
# VARIANT C: shared-memory tiles, q threads (columns) per target
# ============================================================================

_COLUMNS_KERNEL_TEMPLATE = _INTERACTION + r'''
extern "C" __global__
void gravity_columns(
    const {T}* __restrict__ s,
    {T}* __restrict__ t,
    int s_size,
    int t_size,
    int num_cols,
    {T} eps2
) {{
    extern __shared__ unsigned char sh_raw[];
    {T}* sh_mem = reinterpret_cast<{T}*>(sh_raw);  // (4, tile_dim)

    int ithread = threadIdx.x;
    int tile_dim = blockDim.x / num_cols;

    // Row picks the target inside the block, column picks the source slice
    int row = ithread % tile_dim;
    int col = ithread / tile_dim;

    int itarget = blockIdx.x * tile_dim + row;
    {T} tx = t[0*t_size + itarget];
    {T} ty = t[1*t_size + itarget];
    {T} tz = t[2*t_size + itarget];

    int n_tiles = s_size / tile_dim;
    int bodies_per_col = tile_dim / num_cols;

    {T} acc1 = 0;
    {T} acc2 = 0;
    {T} acc3 = 0;

    for (int itile = 0; itile < n_tiles; itile++) {{
        if (col == 0) {{
            int idx = itile * tile_dim + row;
            sh_mem[0*tile_dim + row] = s[0*s_size + idx];
            sh_mem[1*tile_dim + row] = s[1*s_size + idx];
            sh_mem[2*tile_dim + row] = s[2*s_size + idx];
            sh_mem[3*tile_dim + row] = s[3*s_size + idx];
        }}
        __syncthreads();

        for (int k = 0; k < bodies_per_col; k++) {{
            int isource = col * bodies_per_col + k;
            {T} ax, ay, az;
            interaction(tx, ty, tz,
                        sh_mem[0*tile_dim + isource], sh_mem[1*tile_dim + isource],
                        sh_mem[2*tile_dim + isource], sh_mem[3*tile_dim + isource],
                        eps2, &ax, &ay, &az);
            acc1 += ax;
            acc2 += ay;
            acc3 += az;
        }}
        __syncthreads();
    }}

    // q threads share this target: plain stores would lose updates
    atomicAdd(&t[4*t_size + itarget], acc1);
    atomicAdd(&t[5*t_size + itarget], acc2);
    atomicAdd(&t[6*t_size + itarget], acc3);
}}
'''

# ============================================================================
# TEMPLATE TABLES
# ============================================================================

TYPE_SPECS = {
    'float32': {'T': 'float', 'SQRT': 'sqrtf'},
    'float64': {'T': 'double', 'SQRT': 'sqrt'},
}

KERNEL_CONFIG = {
    'global': (_GLOBAL_KERNEL_TEMPLATE, 'gravity_global'),
    'tiled': (_TILED_KERNEL_TEMPLATE, 'gravity_tiled'),
    'columns': (_COLUMNS_KERNEL_TEMPLATE, 'gravity_columns'),
}

__all__ = ["TYPE_SPECS", "KERNEL_CONFIG"]
