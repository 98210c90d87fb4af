# BSD 3-Clause License
#
# Copyright (c) 2022-2025, rd2
#
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions are met:
#
# 1. Redistributions of source code must retain the above copyright notice, this
#    list of conditions and the following disclaimer.
#
# 2. Redistributions in binary form must reproduce the above copyright notice,
#    this list of conditions and the following disclaimer in the documentation
#    and/or other materials provided with the distribution.
#
# 3. Neither the name of the copyright holder nor the names of its
#    contributors may be used to endorse or promote products derived from
#    this software without specific prior written permission.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS"
# AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO, THE
# IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE
# DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR CONTRIBUTORS BE LIABLE
# FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL
# DAMAGES (INCLUDING, BUT NOT LIMITED TO, PROCUREMENT OF SUBSTITUTE GOODS OR
# SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER
# CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY,
# OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE
# OF THIS SOFTWARE, EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.

import math
import collections
import openstudio
from oslg import oslg
from dataclasses import dataclass

@dataclass(frozen=True)
class _CN:
    DBG  = oslg.CN.DEBUG
    INF  = oslg.CN.INFO
    WRN  = oslg.CN.WARN
    ERR  = oslg.CN.ERROR
    FTL  = oslg.CN.FATAL
    TOL  = 0.01      # default distance tolerance (m)
    TOL2 = TOL * TOL # default area tolerance (m2)
    RMIN = 0.001     # min layer thermal resistance (m2•K/W)
    DMIN = 0.003     # min layer thickness (m)
    KMAX = 3.0       # max layer thermal conductivity (W/m•K)
    UMAX = 5.678     # max (uprated) assembly Ut (W/m2•K)
CN = _CN()

# The kernel holds its topology in 'arenas', i.e. one list per entity type
# (vertices, edges, directed edges, wires, faces & shells). Entities refer to
# one another by integer identifiers (their arena index), never by reference.
# Splitting an edge is therefore a matter of rewriting small lists of ids.
#
#   Vertex       : a unique 3D point (within tolerance)
#   Edge         : an unordered pair of distinct vertices
#   DirectedEdge : an edge + traversal direction (building block of wires)
#   Wire         : a closed, planar loop of directed edges
#   Face         : an outer wire + (optional) hole wires
#   Shell        : a connected set of faces


class GeometryError(ValueError):
    """Raised when a kernel invariant (closure, planarity, connectivity, etc.)
    is violated. Geometry defects are not locally recoverable."""
    pass


def scalar(v=None, mag=0) -> openstudio.Vector3d:
    """Returns scalar product of an OpenStudio Vector3d.

    Args:
        v (openstudio.Vector3d):
            An OpenStudio vector.
        mag (float):
            A scalar.

    Returns:
        (openstudio.Vector3d) scaled vector (see logs if (0,0,0)).

    """
    mth = "topolys.scalar"
    cl  = openstudio.Vector3d
    v0  = openstudio.Vector3d()

    if not isinstance(v, cl):
        return oslg.mismatch("vector", v, cl, mth, CN.DBG, v0)

    try:
        mag = float(mag)
    except (ValueError, TypeError):
        return oslg.mismatch("scalar", mag, float, mth, CN.DBG, v0)

    return openstudio.Vector3d(mag * v.x(), mag * v.y(), mag * v.z())


def isSame(p1=None, p2=None, tol=CN.TOL) -> bool:
    """Validates whether 2 OpenStudio 3D points are the same, i.e. less than
    'tol' apart (L2 distance). This is the single equality predicate used by
    every kernel deduplication path.

    Args:
        p1 (openstudio.Point3d):
            1st 3D point.
        p2 (openstudio.Point3d):
            2nd 3D point.
        tol (float):
            Distance tolerance (m).

    Returns:
        bool: Whether points are within tolerance.
        False: If invalid inputs (see logs).

    """
    mth = "topolys.isSame"
    cl  = openstudio.Point3d

    if not isinstance(p1, cl):
        return oslg.mismatch("point 1", p1, cl, mth, CN.DBG, False)
    if not isinstance(p2, cl):
        return oslg.mismatch("point 2", p2, cl, mth, CN.DBG, False)

    dx = p1.x() - p2.x()
    dy = p1.y() - p2.y()
    dz = p1.z() - p2.z()

    return dx * dx + dy * dy + dz * dz < tol * tol


def findOffset(a=[], b=[]) -> int:
    """Returns the offset at which sequence 'b' circularly matches sequence 'a',
    i.e. b[i] == a[(i + offset) % n] for all i.

    Args:
        a (list):
            Reference sequence.
        b (list):
            Candidate sequence.

    Returns:
        int: Circular offset.
        -1: If no circular match.

    """
    n = len(a)

    if n == 0 or n != len(b): return -1

    for offset in range(n):
        if all(a[(i + offset) % n] == b[i] for i in range(n)):
            return offset

    return -1


class Vertex:
    def __init__(self, id, point):
        self.id         = id
        self.point      = point
        self.attributes = dict()


class Edge:
    def __init__(self, id, v0, v1):
        self.id         = id
        self.v0         = v0   # vertex id
        self.v1         = v1   # vertex id
        self.dedges     = []   # directed edge ids
        self.attributes = dict()


class DirectedEdge:
    def __init__(self, id, edge, inverted):
        self.id         = id
        self.edge       = edge # edge id
        self.inverted   = inverted
        self.wires      = []   # wire ids


class Wire:
    def __init__(self, id, dedges):
        self.id         = id
        self.dedges     = dedges
        self.normal     = None
        self.faces      = []   # face ids
        self.attributes = dict()


class Face:
    def __init__(self, id, outer, holes):
        self.id         = id
        self.outer      = outer
        self.holes      = holes
        self.shells     = []
        self.attributes = dict()

    def wires(self) -> list:
        """Returns outer wire id, followed by hole wire ids."""
        return [self.outer] + list(self.holes)


class Shell:
    def __init__(self, id, faces, closed):
        self.id         = id
        self.faces      = faces
        self.closed     = closed
        self.attributes = dict()


def _key(i, j) -> tuple:
    return (i, j) if i < j else (j, i)


class Model:
    """Canonical, deduplicated store of vertices, edges, directed edges,
    wires, faces and shells.

    Args:
        tol (float):
            Vertex deduplication tolerance (m).
        planar_tol (float):
            Wire planarity tolerance (m).

    """

    def __init__(self, tol=CN.TOL, planar_tol=CN.TOL):
        self.tol        = tol
        self.planar_tol = planar_tol
        self.vertices   = []
        self.edges      = []
        self.dedges     = []
        self.wires      = []
        self.faces      = []
        self.shells     = []

        # Lookup indices.
        self._grid   = collections.defaultdict(list) # cell: vertex ids
        self._edgex  = dict()                        # (v0, v1) sorted: edge id
        self._dedgex = dict()                        # (v0, v1): dedge id
        self._wirex  = collections.defaultdict(list) # sorted dedges: wire ids
        self._facex  = dict()                        # (outer, holes): face id
        self._shellx = dict()                        # sorted faces: shell id

    # Vertices.

    def _cell(self, point) -> tuple:
        return (math.floor(point.x() / self.tol),
                math.floor(point.y() / self.tol),
                math.floor(point.z() / self.tol))

    def _nearest(self, point):
        """Returns the nearest vertex within tolerance, or None. Any vertex
        within 'tol' lies in one of the 27 grid cells surrounding the point."""
        i, j, k = self._cell(point)
        found   = None
        dmin    = None

        for di in (-1, 0, 1):
            for dj in (-1, 0, 1):
                for dk in (-1, 0, 1):
                    for vid in self._grid.get((i + di, j + dj, k + dk), []):
                        vtx = self.vertices[vid]
                        if not isSame(vtx.point, point, self.tol): continue

                        d = (vtx.point - point).length()

                        if dmin is None or d < dmin or (d == dmin and vid < found.id):
                            found = vtx
                            dmin  = d

        return found

    def getVertex(self, point=None):
        """Returns the unique kernel vertex matching a 3D point (within
        tolerance), creating it if necessary. A newly created vertex lying
        along the open segment of an existing edge splits that edge.

        Args:
            point (openstudio.Point3d or tuple):
                A 3D point.

        Returns:
            Vertex: Unique kernel vertex.
            None: If invalid input (see logs).

        """
        mth = "topolys.getVertex"
        cl  = openstudio.Point3d

        if isinstance(point, (list, tuple)) and len(point) == 3:
            try:
                point = openstudio.Point3d(float(point[0]),
                                           float(point[1]),
                                           float(point[2]))
            except (ValueError, TypeError):
                return oslg.mismatch("point", point, cl, mth, CN.DBG, None)

        if not isinstance(point, cl):
            return oslg.mismatch("point", point, cl, mth, CN.DBG, None)

        vtx = self._nearest(point)
        if vtx: return vtx

        pt  = openstudio.Point3d(point.x(), point.y(), point.z())
        vtx = Vertex(len(self.vertices), pt)
        self.vertices.append(vtx)
        self._grid[self._cell(pt)].append(vtx.id)

        for edge in list(self.edges):
            if self._along(vtx, edge.v0, edge.v1) is not None:
                self._splitEdge(edge, vtx)

        return vtx

    def getVertices(self, points=[]) -> list:
        """Returns kernel vertices matching a list of 3D points."""
        vtx = []

        for point in points:
            v = self.getVertex(point)
            if v: vtx.append(v)

        return vtx

    def _along(self, vtx, i0, i1):
        """Returns the (0, 1) parameter of a vertex along the open segment of
        2 other vertices (ids), or None if not strictly in between."""
        if vtx.id in (i0, i1): return None

        a  = self.vertices[i0].point
        b  = self.vertices[i1].point
        p  = vtx.point
        ab = b - a
        l2 = ab.dot(ab)
        if l2 < CN.TOL2: return None

        t = (p - a).dot(ab) / l2
        if t <= 0 or t >= 1: return None

        proj = a + scalar(ab, t)
        if not isSame(proj, p, self.tol): return None
        if isSame(p, a, self.tol) or isSame(p, b, self.tol): return None

        if isSame(proj, a, self.tol) or isSame(proj, b, self.tol):
            m = "Vertex %d near edge end (%d, %d): unsplit" % (vtx.id, i0, i1)
            oslg.log(CN.WRN, "%s (topolys.along)" % m)
            return None

        return t

    # Edges.

    def getEdge(self, v0=None, v1=None):
        """Returns the unique kernel edge linking 2 vertices (either order).

        Args:
            v0 (Vertex):
                1st vertex.
            v1 (Vertex):
                2nd vertex.

        Returns:
            Edge: Unique kernel edge.
            None: If invalid inputs (see logs).

        Raises:
            GeometryError: If both vertices are the same.

        """
        mth = "topolys.getEdge"

        if not self._isVertex(v0):
            return oslg.mismatch("v0", v0, Vertex, mth, CN.DBG, None)
        if not self._isVertex(v1):
            return oslg.mismatch("v1", v1, Vertex, mth, CN.DBG, None)
        if v0.id == v1.id:
            raise GeometryError("Degenerate edge at vertex %d (%s)" % (v0.id, mth))

        k = _key(v0.id, v1.id)
        if k in self._edgex: return self.edges[self._edgex[k]]

        edge = Edge(len(self.edges), v0.id, v1.id)
        self.edges.append(edge)
        self._edgex[k] = edge.id

        return edge

    def getDirectedEdge(self, v0=None, v1=None):
        """Returns the unique kernel directed edge from v0 to v1."""
        mth = "topolys.getDirectedEdge"

        if not self._isVertex(v0):
            return oslg.mismatch("v0", v0, Vertex, mth, CN.DBG, None)
        if not self._isVertex(v1):
            return oslg.mismatch("v1", v1, Vertex, mth, CN.DBG, None)

        k = (v0.id, v1.id)
        if k in self._dedgex: return self.dedges[self._dedgex[k]]

        edge = self.getEdge(v0, v1)
        de   = DirectedEdge(len(self.dedges), edge.id, edge.v0 != v0.id)
        self.dedges.append(de)
        self._dedgex[k] = de.id
        edge.dedges.append(de.id)

        return de

    def _splitEdge(self, edge=None, vtx=None):
        """Splits an edge (v0, v1) into (v0, vn) & (vn, v1), in place. Directed
        edges & wires referring to the original edge are migrated."""
        i0 = edge.v0
        i1 = edge.v1
        vn = vtx.id

        del self._edgex[_key(i0, i1)]
        edge.v1 = vn
        self._edgex[_key(i0, vn)] = edge.id
        self.getEdge(vtx, self.vertices[i1])

        for did in list(edge.dedges):
            de = self.dedges[did]

            if de.inverted: # v1 -> v0 becomes vn -> v0, preceded by v1 -> vn
                del self._dedgex[(i1, i0)]
                self._dedgex[(vn, i0)] = de.id
                new    = self.getDirectedEdge(self.vertices[i1], vtx)
                offset = 0
            else:           # v0 -> v1 becomes v0 -> vn, followed by vn -> v1
                del self._dedgex[(i0, i1)]
                self._dedgex[(i0, vn)] = de.id
                new    = self.getDirectedEdge(vtx, self.vertices[i1])
                offset = 1

            for wid in de.wires:
                wire = self.wires[wid]
                self._unindexWire(wire)
                i = wire.dedges.index(de.id)
                wire.dedges.insert(i + offset, new.id)
                self._indexWire(wire)
                if wid not in new.wires: new.wires.append(wid)

    # Wires.

    def origin(self, de=None) -> Vertex:
        """Returns the origin vertex of a directed edge."""
        edge = self.edges[de.edge]
        return self.vertices[edge.v1 if de.inverted else edge.v0]

    def terminal(self, de=None) -> Vertex:
        """Returns the terminal vertex of a directed edge."""
        edge = self.edges[de.edge]
        return self.vertices[edge.v0 if de.inverted else edge.v1]

    def vector(self, de=None) -> openstudio.Vector3d:
        return self.terminal(de).point - self.origin(de).point

    def length(self, edge=None) -> float:
        """Returns the length of an edge (m)."""
        return (self.vertices[edge.v1].point - self.vertices[edge.v0].point).length()

    def points(self, wire=None) -> list:
        """Returns the ordered 3D points of a wire."""
        return [self.origin(self.dedges[did]).point for did in wire.dedges]

    def wireEdges(self, wire=None) -> list:
        """Returns the ordered edges of a wire."""
        return [self.edges[self.dedges[did].edge] for did in wire.dedges]

    def _indexWire(self, wire=None):
        self._wirex[tuple(sorted(wire.dedges))].append(wire.id)

    def _unindexWire(self, wire=None):
        k = tuple(sorted(wire.dedges))
        if wire.id in self._wirex.get(k, []): self._wirex[k].remove(wire.id)

    def _inserts(self, loop=[]) -> list:
        """Inserts existing kernel vertices lying along a vertex loop's
        segments, ordered by distance along each segment."""
        res = []
        n   = len(loop)

        for i, v in enumerate(loop):
            w = loop[(i + 1) % n]
            res.append(v)
            if v.id == w.id: continue

            along = []

            for vtx in self.vertices:
                t = self._along(vtx, v.id, w.id)
                if t is not None: along.append((t, vtx.id))

            res.extend([self.vertices[vid] for _, vid in sorted(along)])

        return res

    def getWire(self, vertices=[]):
        """Returns the unique kernel wire traversing a closed loop of vertices.
        A cyclically-rotated copy of the same loop returns the same wire.

        Args:
            vertices (list):
                An ordered loop of kernel vertices (last != first).

        Returns:
            Wire: Unique kernel wire.
            None: If invalid input (see logs).

        Raises:
            GeometryError: If < 3 distinct vertices, self-intersecting, not
                closed, not sequential or not planar.

        """
        mth = "topolys.getWire"

        if not isinstance(vertices, (list, tuple)):
            return oslg.mismatch("vertices", vertices, list, mth, CN.DBG, None)

        for v in vertices:
            if not self._isVertex(v):
                return oslg.mismatch("vertex", v, Vertex, mth, CN.DBG, None)

        vxs = []

        for v in vertices:
            if vxs and vxs[-1].id == v.id: continue
            vxs.append(v)

        while len(vxs) > 1 and vxs[0].id == vxs[-1].id: vxs.pop()

        nb = len(set([v.id for v in vxs]))

        if nb < 3:
            raise GeometryError("%d vertices? need +3 (%s)" % (nb, mth))

        loop = []

        for v in self._inserts(vxs):
            if loop and loop[-1].id == v.id: continue
            loop.append(v)

        while len(loop) > 1 and loop[0].id == loop[-1].id: loop.pop()

        # A loop may only visit each vertex once.
        if len(set([v.id for v in loop])) < len(loop):
            raise GeometryError("Self-intersecting wire (%s)" % mth)

        n   = len(loop)
        ids = [self.getDirectedEdge(loop[i], loop[(i + 1) % n]).id for i in range(n)]

        for wid in self._wirex.get(tuple(sorted(ids)), []):
            if findOffset(self.wires[wid].dedges, ids) > -1:
                return self.wires[wid]

        wire = Wire(len(self.wires), ids)
        self.validate(wire)
        self.wires.append(wire)
        self._indexWire(wire)

        for did in ids: self.dedges[did].wires.append(wire.id)

        return wire

    def validate(self, wire=None) -> bool:
        """Validates a wire: +3 edges, sequential, closed, non-collinear &
        planar. Sets the wire's unit normal, i.e. the greatest cross product
        among all pairs of its edge vectors (oriented as the loop's outward
        normal). A wire is collinear if none of its edges deviates from
        another's line by more than the model tolerance.

        Raises:
            GeometryError: If invalid wire.

        """
        mth = "topolys.validate"
        des = [self.dedges[did] for did in wire.dedges]
        n   = len(des)

        if n < 3:
            raise GeometryError("%d edges? need +3 (%s)" % (n, mth))

        for i in range(n - 1):
            if self.terminal(des[i]).id != self.origin(des[i + 1]).id:
                raise GeometryError("Non-sequential wire (%s)" % mth)

        if self.terminal(des[-1]).id != self.origin(des[0]).id:
            raise GeometryError("Open wire (%s)" % mth)

        vs  = [self.vector(de) for de in des]
        nrm = None
        mag = 0
        off = 0

        for i in range(n - 1):
            for j in range(i + 1, n):
                c = vs[i].cross(vs[j])
                l = max(vs[i].length(), vs[j].length())

                if c.length() > mag:
                    nrm = c
                    mag = c.length()

                # Deviation of the shorter edge from the longer one's line.
                if l > 0: off = max(off, c.length() / l)

        if nrm is None or mag < CN.TOL2 or off < self.tol:
            raise GeometryError("Collinear wire (%s)" % mth)

        nrm.normalize()
        pts = self.points(wire)
        ref = openstudio.getOutwardNormal(_p3Dv(pts))

        if ref and nrm.dot(ref.get()) < 0: nrm = scalar(nrm, -1)

        for pt in pts:
            if abs((pt - pts[0]).dot(nrm)) > self.planar_tol:
                raise GeometryError("Non-planar wire (%s)" % mth)

        wire.normal = nrm

        return True

    # Faces & shells.

    def getFace(self, outer=None, holes=[]):
        """Returns the unique kernel face bounded by an outer wire and
        (optional) hole wires.

        Args:
            outer (Wire):
                A kernel wire.
            holes (list):
                Kernel wires, coplanar with (and wound as) the outer wire.

        Returns:
            Face: Unique kernel face.
            None: If unregistered or invalid wires (see logs).

        Raises:
            GeometryError: If holes are non-coplanar or wound opposite.

        """
        mth = "topolys.getFace"

        if not self._isWire(outer):
            return oslg.mismatch("outer", outer, Wire, mth, CN.DBG, None)

        for hole in holes:
            if not self._isWire(hole):
                return oslg.mismatch("hole", hole, Wire, mth, CN.DBG, None)

        o = self.points(outer)[0]

        for hole in holes:
            for pt in self.points(hole):
                if abs((pt - o).dot(outer.normal)) > self.planar_tol:
                    m = "Non-coplanar hole %d" % hole.id
                    raise GeometryError("%s (%s)" % (m, mth))

            if hole.normal.dot(outer.normal) < 0:
                m = "Hole %d wound opposite" % hole.id
                raise GeometryError("%s (%s)" % (m, mth))

        k = (outer.id, tuple(sorted(hole.id for hole in holes)))
        if k in self._facex: return self.faces[self._facex[k]]

        face = Face(len(self.faces), outer.id, [hole.id for hole in holes])
        self.faces.append(face)
        self._facex[k] = face.id

        for wid in face.wires(): self.wires[wid].faces.append(face.id)

        return face

    def getShell(self, faces=[]):
        """Returns the unique kernel shell grouping connected faces. Every face
        must be reachable from every other face through shared (outer) edges.

        Args:
            faces (list):
                Kernel faces.

        Returns:
            Shell: Unique kernel shell.
            None: If unregistered faces (see logs).

        Raises:
            GeometryError: If duplicate or disconnected faces.

        """
        mth = "topolys.getShell"

        if not faces:
            return oslg.empty("faces", mth, CN.DBG, None)

        for face in faces:
            if not self._isFace(face):
                return oslg.mismatch("face", face, Face, mth, CN.DBG, None)

        ids = [face.id for face in faces]

        if len(set(ids)) != len(ids):
            raise GeometryError("Duplicate faces (%s)" % mth)

        k = tuple(sorted(ids))
        if k in self._shellx: return self.shells[self._shellx[k]]

        e2f = collections.OrderedDict()

        for i, face in enumerate(faces):
            for edge in self.wireEdges(self.wires[face.outer]):
                e2f.setdefault(edge.id, [])
                if i not in e2f[edge.id]: e2f[edge.id].append(i)

        # Reachability closure, starting from direct (shared edge) adjacency.
        n     = len(faces)
        reach = [set([i]) for i in range(n)]

        for fs in e2f.values():
            for i in fs: reach[i].update(fs)

        for _ in range(100):
            done = True

            for i in range(n):
                r = set(reach[i])
                for j in reach[i]: r.update(reach[j])

                if len(r) > len(reach[i]):
                    reach[i] = r
                    done     = False

            if done: break

        for r in reach:
            if len(r) < n:
                raise GeometryError("Faces not connected (%s)" % mth)

        closed = all(len(fs) == 2 for fs in e2f.values())
        shell  = Shell(len(self.shells), ids, closed)
        self.shells.append(shell)
        self._shellx[k] = shell.id

        for face in faces: face.shells.append(shell.id)

        return shell

    # Registration checks.

    def _isVertex(self, v=None) -> bool:
        if not isinstance(v, Vertex): return False
        if v.id >= len(self.vertices): return False

        return self.vertices[v.id] is v

    def _isWire(self, w=None) -> bool:
        if not isinstance(w, Wire): return False
        if w.id >= len(self.wires): return False

        return self.wires[w.id] is w

    def _isFace(self, f=None) -> bool:
        if not isinstance(f, Face): return False
        if f.id >= len(self.faces): return False

        return self.faces[f.id] is f


def _p3Dv(pts=[]) -> openstudio.Point3dVector:
    v = openstudio.Point3dVector()

    for pt in pts: v.append(pt)

    return v
