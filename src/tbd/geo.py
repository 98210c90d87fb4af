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
import openstudio
from oslg import oslg
from .topolys import CN, Model, GeometryError, isSame, scalar

# Surface & subsurface types recognized by TBD.
_types  = ("floor", "wall", "ceiling")
_subs   = ("window", "door", "skylight")

zenith = openstudio.Vector3d(0, 0, 1)
north  = openstudio.Vector3d(0, 1, 0)
east   = openstudio.Vector3d(1, 0, 0)


def types() -> tuple:
    return _types


def subtypes() -> tuple:
    return _subs


def points(pts=None) -> list:
    """Returns a list of OpenStudio 3D points from a list of (x, y, z) tuples
    (or OpenStudio 3D points).

    Args:
        pts (list):
            3D points, e.g. [(0, 0, 3), (0, 0, 0), (4, 0, 0), (4, 0, 3)].

    Returns:
        list: OpenStudio 3D points.
        []: If invalid input (see logs).

    """
    mth = "tbd.points"
    cl  = openstudio.Point3d
    v   = []

    if isinstance(pts, openstudio.Point3dVector): pts = list(pts)

    if not isinstance(pts, (list, tuple)):
        return oslg.mismatch("points", pts, list, mth, CN.DBG, v)

    for pt in pts:
        if isinstance(pt, cl):
            v.append(openstudio.Point3d(pt.x(), pt.y(), pt.z()))
        elif isinstance(pt, (list, tuple)) and len(pt) == 3:
            try:
                v.append(openstudio.Point3d(float(pt[0]),
                                            float(pt[1]),
                                            float(pt[2])))
            except (ValueError, TypeError):
                return oslg.mismatch("point", pt, cl, mth, CN.DBG, [])
        else:
            return oslg.mismatch("point", pt, cl, mth, CN.DBG, [])

    return v


def p3Dv(pts=[]) -> openstudio.Point3dVector:
    v = openstudio.Point3dVector()

    for pt in pts: v.append(pt)

    return v


def outwardNormal(pts=[]):
    """Returns the (Newell) outward normal of a polygon, or None."""
    if len(pts) < 3: return None

    n = openstudio.getOutwardNormal(p3Dv(pts))
    if not n: return None

    return n.get()


def area(pts=[]) -> float:
    """Returns the area of a polygon (m2), 0.0 if invalid."""
    if len(pts) < 3: return 0.0

    a = openstudio.getArea(p3Dv(pts))
    if not a: return 0.0

    return a.get()


def minz(pts=[]) -> float:
    if not pts: return 0.0

    return min([pt.z() for pt in pts])


def isOnPlane(pts=[], origin=None, n=None, tol=CN.TOL) -> bool:
    """Validates whether all points lie on a plane (origin & unit normal)."""
    for pt in pts:
        if abs((pt - origin).dot(n)) > tol: return False

    return True


def matches(e1=dict(), e2=dict(), tol=CN.TOL) -> bool:
    """Validates whether 2 edges share vertex pairs (in either direction),
    within tolerance.

    Args:
        e1 (dict):
            1st edge, with 3D point "v0" & "v1" keys.
        e2 (dict):
            2nd edge, with 3D point "v0" & "v1" keys.
        tol (float):
            Proximity tolerance (m).

    Returns:
        bool: Whether edges match.
        False: If invalid inputs (see logs).

    """
    mth = "tbd.matches"
    cl  = openstudio.Point3d

    for tag, e in (("e1", e1), ("e2", e2)):
        if not isinstance(e, dict):
            return oslg.mismatch(tag, e, dict, mth, CN.DBG, False)

        for k in ("v0", "v1"):
            if k not in e:
                return oslg.hashkey(tag, e, k, mth, CN.DBG, False)
            if not isinstance(e[k], cl):
                return oslg.mismatch(tag + " " + k, e[k], cl, mth, CN.DBG, False)

        if (e["v1"] - e["v0"]).length() < CN.TOL:
            return oslg.zero(tag, mth, CN.DBG, False)

    try:
        tol = float(tol)
    except (ValueError, TypeError):
        return oslg.mismatch("tol", tol, float, mth, CN.DBG, False)

    def near(p1, p2):
        return (abs(p1.x() - p2.x()) < tol and
                abs(p1.y() - p2.y()) < tol and
                abs(p1.z() - p2.z()) < tol)

    if near(e1["v0"], e2["v0"]) and near(e1["v1"], e2["v1"]): return True
    if near(e1["v0"], e2["v1"]) and near(e1["v1"], e2["v0"]): return True

    return False


def _polarity(s1=None, s2=None):
    """Returns (n1·p2, p1·n2) of 2 edge-linked surfaces, or None if their
    relative polar position is either ~flat (or ~aligned) around the edge."""
    for s in (s1, s2):
        if not isinstance(s, dict): return None

        for k in ("angle", "polar", "normal"):
            if k not in s: return None

    angle = abs(s1["angle"] - s2["angle"])

    if angle < CN.TOL: return None
    if abs(2 * math.pi - angle) < CN.TOL: return None
    if 3 * math.pi / 4 < angle < 5 * math.pi / 4: return None

    return (s1["normal"].dot(s2["polar"]), s1["polar"].dot(s2["normal"]))


def isConcave(s1=None, s2=None) -> bool:
    """Validates whether 2 edge-linked surfaces form a concave (inside) angle,
    based on their outward normals & polar vectors around the edge.

    Args:
        s1 (dict):
            1st edge-linked surface ("angle", "polar" & "normal" keys).
        s2 (dict):
            2nd edge-linked surface.

    Returns:
        bool: Whether surfaces are concave.
        False: If invalid inputs, or if ~flat.

    """
    res = _polarity(s1, s2)
    if res is None: return False

    return res[0] > 0 and res[1] > 0


def isConvex(s1=None, s2=None) -> bool:
    """Validates whether 2 edge-linked surfaces form a convex (outside) angle."""
    res = _polarity(s1, s2)
    if res is None: return False

    return res[0] < 0 and res[1] < 0


def surfaces(s=[]) -> dict:
    """Returns validated, defaulted TBD surfaces (keyed by surface ID), from a
    list of external surface records. Subsurfaces are sorted by their minimum
    elevation. Invalid records are skipped (see logs).

    Args:
        s (list):
            Surface records, each a dictionary:
                - "id" (str): unique surface identifier
                - "type" (str): "floor", "wall" or "ceiling"
                - "points" (list): 3D polygon, in the absolute frame
                - "boundary" (str): boundary condition, or adjacent surface ID
                - "deratable" (bool): whether surface can be derated
                - "conditioned" (bool): whether linked space is conditioned
                - "layer" (dict): insulating "index", "type", "r", "k", "d"
                - "subs" (list): subsurfaces ("id", "type", "points", ...)
                - "story", "stype", "space" (str): group identifiers (optional)
                - "construction" (str), "rsi" (float): assembly (optional)

    Returns:
        dict: TBD surfaces (possibly empty, see logs).

    Raises:
        GeometryError: If a (sub)surface polygon holds fewer than 3 vertices,
            or if its outline is degenerate (with surface ID).

    """
    mth = "tbd.surfaces"
    res = dict()

    if not isinstance(s, (list, tuple)):
        return oslg.mismatch("surfaces", s, list, mth, CN.DBG, res)

    for surface in s:
        if not isinstance(surface, dict):
            oslg.mismatch("surface", surface, dict, mth, CN.ERR)
            continue

        if "id" not in surface:
            oslg.hashkey("surface", surface, "id", mth, CN.ERR)
            continue

        id = str(surface["id"])

        if id in res:
            oslg.log(CN.ERR, "Duplicate surface '%s' (%s)" % (id, mth))
            continue

        typ = str(surface.get("type", "")).lower()

        if typ not in _types:
            oslg.invalid("%s type" % id, mth, 0, CN.ERR)
            continue

        pts = points(surface.get("points", []))

        if len(pts) < 3:
            raise GeometryError("'%s': %d vertices? need +3" % (id, len(pts)))

        n = outwardNormal(pts)

        if n is None:
            raise GeometryError("'%s': degenerate outline" % id)

        try:
            gross = float(surface.get("gross", area(pts)))
        except (ValueError, TypeError):
            oslg.mismatch("%s gross" % id, surface["gross"], float, mth, CN.ERR)
            continue

        try:
            net = float(surface["net"]) if "net" in surface else None
        except (ValueError, TypeError):
            oslg.mismatch("%s net" % id, surface["net"], float, mth, CN.ERR)
            continue

        bnd = str(surface.get("boundary", "outdoors"))

        props = dict(surface)
        props["id"         ] = id
        props["type"       ] = typ
        props["points"     ] = pts
        props["n"          ] = n
        props["minz"       ] = minz(pts)
        props["boundary"   ] = bnd
        props["ground"     ] = bool(surface.get("ground", bnd.lower() in ("ground", "foundation")))
        props["deratable"  ] = bool(surface.get("deratable", False))
        props["conditioned"] = bool(surface.get("conditioned", True))
        props["occupied"   ] = bool(surface.get("occupied", True))
        props["spandrel"   ] = bool(surface.get("spandrel", False))
        props["story"      ] = str(surface.get("story", ""))
        props["stype"      ] = str(surface.get("stype", ""))
        props["space"      ] = str(surface.get("space", ""))
        props["gross"      ] = gross
        props["subs"       ] = _subsurfaces(id, surface.get("subs", []))

        if net is not None:
            props["net"] = net
        else:
            holes = [area(sub["points"]) * sub["mult"] for sub in props["subs"].values()]
            props["net"] = props["gross"] - sum(holes)

        res[id] = props

    return res


def _subsurfaces(id="", subs=[]) -> dict:
    """Returns validated subsurfaces of a parent surface, sorted by minz.

    Raises:
        GeometryError: If degenerate subsurface polygon.

    """
    mth = "tbd.subsurfaces"
    res = []

    if not isinstance(subs, (list, tuple)):
        return oslg.mismatch("%s subs" % id, subs, list, mth, CN.DBG, dict())

    for sub in subs:
        if not isinstance(sub, dict) or "id" not in sub:
            oslg.log(CN.ERR, "Invalid '%s' subsurface (%s)" % (id, mth))
            continue

        typ = str(sub.get("type", "window")).lower()

        if typ not in _subs:
            oslg.invalid("%s type" % sub["id"], mth, 0, CN.ERR)
            continue

        pts = points(sub.get("points", []))

        if len(pts) < 3:
            raise GeometryError("'%s': %d vertices? need +3" % (sub["id"], len(pts)))

        nn = outwardNormal(pts)

        if nn is None:
            raise GeometryError("'%s': degenerate outline" % sub["id"])

        try:
            mult = max(1, int(sub.get("mult", 1)))
        except (ValueError, TypeError):
            oslg.mismatch("%s mult" % sub["id"], sub["mult"], int, mth, CN.ERR)
            continue

        props = dict(sub)
        props["id"    ] = str(sub["id"])
        props["parent"] = id
        props["type"  ] = typ
        props["glazed"] = bool(sub.get("glazed", False))
        props["points"] = pts
        props["n"     ] = nn
        props["minz"  ] = minz(pts)
        props["mult"  ] = mult
        res.append(props)

    return dict([(sub["id"], sub) for sub in sorted(res, key=lambda s: s["minz"])])


def shades(s=[]) -> dict:
    """Returns validated shading surfaces (keyed by ID), from a list of
    {"id", "points"} records.

    Raises:
        GeometryError: If degenerate shade polygon (with shade ID).

    """
    mth = "tbd.shades"
    res = dict()

    if not isinstance(s, (list, tuple)):
        return oslg.mismatch("shades", s, list, mth, CN.DBG, res)

    for shade in s:
        if not isinstance(shade, dict) or "id" not in shade:
            oslg.log(CN.ERR, "Invalid shade (%s)" % mth)
            continue

        id  = str(shade["id"])
        pts = points(shade.get("points", []))
        n   = outwardNormal(pts)

        if n is None:
            raise GeometryError("'%s': %d vertices, degenerate outline" % (id, len(pts)))

        res[id] = dict(id=id, points=pts, n=n, minz=minz(pts))

    return res


def objects(model=None, pts=[]) -> dict:
    """Returns kernel vertices & wire from 3D points, populating the kernel
    model as a side effect.

    Raises:
        GeometryError: If invalid wire.

    """
    mth = "tbd.objects"
    obj = dict(vx=None, w=None)

    if not isinstance(model, Model):
        return oslg.mismatch("model", model, Model, mth, CN.DBG, obj)

    if len(pts) < 3:
        oslg.log(CN.DBG, "%d? need +3 points (%s)" % (len(pts), mth))
        return obj

    obj["vx"] = model.getVertices(pts)
    obj["w" ] = model.getWire(obj["vx"])

    return obj


def kids(model=None, dad=dict()) -> list:
    """Populates kernel wires of a parent surface's subsurfaces. 'Unhinged'
    subsurfaces (not on the same 3D plane as their parent, e.g. tubular
    daylighting domes) are flagged as such.

    Returns:
        list: Hole wires (see logs if empty).

    """
    mth   = "tbd.kids"
    holes = []

    if not isinstance(model, Model):
        return oslg.mismatch("model", model, Model, mth, CN.DBG, holes)

    for id, sub in dad["subs"].items():
        obj = objects(model, sub["points"])
        if not obj["w"]: continue

        wire = obj["w"]
        hinged = isOnPlane(sub["points"], dad["points"][0], dad["n"])

        sub["unhinged"] = not hinged
        sub["wire"    ] = wire.id
        wire.attributes["id"      ] = id
        wire.attributes["n"       ] = sub["n"]
        wire.attributes["unhinged"] = sub["unhinged"]
        holes.append(wire)

    return holes


def dads(model=None, pops=dict()) -> dict:
    """Populates kernel faces (and holes) of parent surfaces.

    Returns:
        dict: Hole wires, keyed by subsurface ID.

    Raises:
        GeometryError: If invalid surface geometry (with surface ID).

    """
    mth   = "tbd.dads"
    holes = dict()

    if not isinstance(model, Model):
        return oslg.mismatch("model", model, Model, mth, CN.DBG, holes)

    for id, props in pops.items():
        try:
            obj = objects(model, props["points"])
            if not obj["w"]: continue

            obj["w"].attributes["id"] = id
            props["wire"] = obj["w"].id
            hols = kids(model, props) if "subs" in props else []

            hinged = [h for h in hols if not h.attributes["unhinged"]]
            face   = model.getFace(obj["w"], hinged)
        except GeometryError as e:
            raise GeometryError("'%s': %s" % (id, str(e))) from e

        if not face:
            oslg.log(CN.DBG, "Unable to retrieve valid '%s' face (%s)" % (id, mth))
            continue

        face.attributes["id"] = id
        face.attributes["n" ] = props["n"]
        props["face"] = face.id

        for hole in hols:
            holes[hole.attributes["id"]] = hole

            if hole.attributes["unhinged"]:
                f = model.getFace(hole, [])
                if f: f.attributes["id"] = hole.attributes["id"]

    return holes


def faces(model=None, s=dict(), e=dict()) -> bool:
    """Links TBD edges (keyed by kernel edge ID) to surfaces, through their
    kernel face wires.

    Returns:
        bool: Whether successful.
        False: If invalid inputs (see logs).

    """
    mth = "tbd.faces"

    if not isinstance(model, Model):
        return oslg.mismatch("model", model, Model, mth, CN.DBG, False)
    if not isinstance(s, dict):
        return oslg.mismatch("surfaces", s, dict, mth, CN.DBG, False)
    if not isinstance(e, dict):
        return oslg.mismatch("edges", e, dict, mth, CN.DBG, False)

    for id, props in s.items():
        if "face" not in props:
            oslg.log(CN.DBG, "Missing '%s' face (%s)" % (id, mth))
            continue

        for wid in model.faces[props["face"]].wires():
            link(model, e, model.wires[wid], id)

    return True


def link(model=None, e=dict(), wire=None, id=""):
    """Links each edge of a kernel wire to a surface (or subsurface) ID."""
    for edge in model.wireEdges(wire):
        if edge.id not in e:
            e[edge.id] = dict(length=model.length(edge),
                                  v0=model.vertices[edge.v0].point,
                                  v1=model.vertices[edge.v1].point,
                            surfaces=dict())

        if id not in e[edge.id]["surfaces"]:
            e[edge.id]["surfaces"][id] = dict(wire=wire.id)


def polar(model=None, edges=dict(), normals=dict(), outers=dict()) -> bool:
    """Sets the relative polar position of each edge-linked surface around
    its edge, with respect to a reference vector perpendicular to the edge:
    North for vertical edges, zenith for horizontal edges, and otherwise the
    zenith vector projected onto the edge plane. Angles increase clockwise
    when looking in the opposite direction of the edge vector, [0, 2PI).
    Linked surfaces are then sorted by angle.

    For each linked surface wire, the farthest wire point (projected onto the
    edge plane) is retained, provided the triangle it forms with the
    (traversed) edge shares the surface's outward normal. Parent surfaces
    linked through one of their hole wires are set opposite the hole.

    Args:
        model (topolys.Model):
            Kernel model.
        edges (dict):
            TBD edges.
        normals (dict):
            Outward normals, keyed by (sub)surface ID.
        outers (dict):
            Outer wire IDs of parent surfaces, keyed by surface ID.

    Returns:
        bool: Whether successful.
        False: If invalid inputs (see logs).

    """
    mth = "tbd.polar"

    if not isinstance(model, Model):
        return oslg.mismatch("model", model, Model, mth, CN.DBG, False)
    if not isinstance(edges, dict):
        return oslg.mismatch("edges", edges, dict, mth, CN.DBG, False)

    for eid, edge in edges.items():
        origin   = edge["v0"]
        terminal = edge["v1"]
        dx       = abs(origin.x() - terminal.x())
        dy       = abs(origin.y() - terminal.y())
        dz       = abs(origin.z() - terminal.z())
        edge_V   = terminal - origin

        edge["horizontal"] = dz < CN.TOL
        edge["vertical"  ] = dx < CN.TOL and dy < CN.TOL

        if edge_V.length() < CN.TOL: continue

        plane = openstudio.Plane(origin, edge_V)

        if edge["vertical"]:
            ref = openstudio.Vector3d(north.x(), north.y(), north.z())
        elif edge["horizontal"]:
            ref = openstudio.Vector3d(zenith.x(), zenith.y(), zenith.z())
        else:
            ref = plane.project(origin + zenith) - origin

        for id, s in edge["surfaces"].items():
            if id not in normals: continue

            wire     = model.wires[s["wire"]]
            n        = normals[id]
            reverse  = id in outers and outers[id] != wire.id
            inverted = False

            for did in wire.dedges:
                de = model.dedges[did]

                if de.edge == eid:
                    inverted = de.inverted
                    break

            a = terminal if inverted else origin
            b = origin   if inverted else terminal
            farthest_V   = None
            farthest_mag = 0

            for pt in model.points(wire):
                if isSame(pt, origin) or isSame(pt, terminal): continue

                tri = (b - a).cross(pt - a)
                if tri.length() < CN.TOL2: continue

                tri.normalize()
                if tri.dot(wire.normal) < 0: continue

                V   = plane.project(pt) - origin
                mag = V.length()
                if mag < CN.TOL: continue
                if mag < farthest_mag: continue

                farthest_V   = V
                farthest_mag = mag

            if farthest_V is None:
                m = "Edge %d: '%s' polar position? (%s)" % (eid, id, mth)
                oslg.log(CN.DBG, m)
                continue

            if reverse: farthest_V = scalar(farthest_V, -1)

            angle  = openstudio.getAngle(ref, farthest_V)
            adjust = False

            if edge["vertical"]:
                adjust = east.dot(farthest_V) < -CN.TOL
            else:
                dN  = north.dot(farthest_V) / farthest_V.length()
                dN1 = abs(dN) - 1

                if abs(dN) < CN.TOL or abs(dN1) < CN.TOL:
                    adjust = east.dot(farthest_V) < -CN.TOL
                else:
                    adjust = dN < -CN.TOL

            if adjust: angle = 2 * math.pi - angle
            if abs(angle - 2 * math.pi) < CN.TOL: angle = 0.0

            farthest_V.normalize()
            s["angle" ] = angle
            s["polar" ] = farthest_V
            s["normal"] = n

        ss = sorted(edge["surfaces"].items(), key=lambda x: x[1].get("angle", 0))
        edge["surfaces"] = dict(ss)

    return True
