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

import copy
import unittest
from src.tbd import tbd
from src.tbd import topolys

DBG  = topolys.CN.DBG
INF  = topolys.CN.INF
WRN  = topolys.CN.WRN
ERR  = topolys.CN.ERR
FTL  = topolys.CN.FTL
TOL  = topolys.CN.TOL

window = [(1, 0, 2), (1, 0, 1), (3, 0, 1), (3, 0, 2)]


def room(subs=[dict(id="win", type="window", points=window)]):
    """Returns a single 4m x 4m x 3m room: 4x deratable walls (massless
    insulation), a deratable roof (standard insulation) and an intermediate
    (non-deratable) floor."""
    walls = dict(south=[(0, 0, 3), (0, 0, 0), (4, 0, 0), (4, 0, 3)],
                 east =[(4, 0, 3), (4, 0, 0), (4, 4, 0), (4, 4, 3)],
                 north=[(4, 4, 3), (4, 4, 0), (0, 4, 0), (0, 4, 3)],
                 west =[(0, 4, 3), (0, 4, 0), (0, 0, 0), (0, 0, 3)])
    s = []

    for id, pts in walls.items():
        s.append(dict(id           = id,
                      type         = "wall",
                      points       = pts,
                      deratable    = True,
                      story        = "Level 1",
                      space        = "office",
                      construction = "ext wall",
                      layers       = [dict(r=2.0)],
                      film         = 0.3,
                      subs         = subs if id == "south" else []))

    s.append(dict(id           = "roof",
                  type         = "ceiling",
                  points       = [(0, 0, 3), (4, 0, 3), (4, 4, 3), (0, 4, 3)],
                  deratable    = True,
                  story        = "Level 1",
                  space        = "office",
                  construction = "roof",
                  layers       = [dict(k=0.04, d=0.2)]))

    s.append(dict(id       = "floor",
                  type     = "floor",
                  points   = [(0, 0, 0), (0, 4, 0), (4, 4, 0), (4, 0, 0)],
                  boundary = "Level 1 ceiling",
                  story    = "Level 1",
                  space    = "office"))

    return s


def types(res=dict()) -> dict:
    t = dict()

    for edge in res["edges"]:
        t[edge["type"]] = t.get(edge["type"], 0) + 1

    return t


class TestThermalBridging(unittest.TestCase):
    def test00_room(self):
        o = tbd.oslg
        self.assertEqual(o.reset(DBG), DBG)
        self.assertEqual(o.clean(), DBG)

        argh = dict(option="regular (BETBG)")
        res  = tbd.process(room(), [], argh)
        self.assertTrue(o.status() < WRN)
        self.assertEqual(len(res["edges"]), 16)
        self.assertEqual(types(res), dict(cornerconvex  = 4,
                                          rimjoist      = 4,
                                          parapetconvex = 4,
                                          head          = 1,
                                          sill          = 1,
                                          jamb          = 2))

        for edge in res["edges"]:
            self.assertEqual(edge["set"], "regular (BETBG)")
            self.assertEqual(edge["mult"], 1)

            if edge["type"] == "rimjoist":
                self.assertAlmostEqual(edge["psi"], 0.500, places=3)
            elif edge["type"] in ("head", "sill", "jamb"):
                self.assertAlmostEqual(edge["psi"], 0.350, places=3)
                self.assertTrue("win" in edge["surfaces"])
            else:
                self.assertAlmostEqual(edge["psi"], 0.450, places=3)

        # Defaulted arguments.
        self.assertTrue(argh["parapet"])
        self.assertFalse(argh["uprate_walls"])
        self.assertAlmostEqual(argh["sub_tol"], TOL, places=3)

        self.assertEqual(sorted(res["surfaces"].keys()),
                         ["east", "north", "roof", "south", "west"])

        south = res["surfaces"]["south"]
        hl    = 2.0 + 2 * 0.45 * 3 * 0.5 + 0.45 * 4 * 2 / 7 + 0.35 * 6
        self.assertAlmostEqual(south["heatloss"], hl, places=3)
        self.assertAlmostEqual(south["r"], 1 / (0.5 + hl / 10), places=3)
        self.assertAlmostEqual(south["r_heatloss"], 0, places=3)
        self.assertAlmostEqual(south["u_realized"], 1 / (south["r"] + 0.3), places=3)
        self.assertAlmostEqual(south["u_requested"], south["u_realized"], places=3)
        self.assertAlmostEqual(south["u_realized"], 0.825, places=3)
        self.assertTrue(south["ratio"] < -40)
        self.assertEqual(south["index"], 0)
        self.assertEqual(south["construction"], "ext wall")
        self.assertEqual(len(south["edges"]), 8)
        self.assertEqual(south["pts"], dict())

        east = res["surfaces"]["east"]
        self.assertAlmostEqual(east["heatloss"], 2.0 + 1.35 + 1.8 * 2 / 7, places=3)
        self.assertEqual(len(east["edges"]), 4)

        roof = res["surfaces"]["roof"]
        hl   = 4 * 0.45 * 4 * 5 / 7
        self.assertAlmostEqual(roof["heatloss"], hl, places=3)
        self.assertAlmostEqual(roof["layer"]["k"], 0.04, places=3)
        self.assertAlmostEqual(roof["layer"]["d"], 0.04 / (0.2 + hl / 16), places=3)

        # Edge heat loss is fully allocated to linked surfaces.
        for edge in res["edges"]:
            total = 0

            for surface in res["surfaces"].values():
                if edge["id"] not in surface["edges"]: continue

                b = surface["edges"][edge["id"]]
                total += b["psi"] * b["length"]

            self.assertAlmostEqual(total, edge["psi"] * edge["length"], places=3)

    def test01_determinism(self):
        o = tbd.oslg
        self.assertEqual(o.reset(DBG), DBG)
        self.assertEqual(o.clean(), DBG)

        s    = room()
        res1 = tbd.process(copy.deepcopy(s), [], dict(option="poor (BETBG)"))
        res2 = tbd.process(copy.deepcopy(s), [], dict(option="poor (BETBG)"))
        self.assertEqual(res1["edges"], res2["edges"])
        self.assertEqual(res1["surfaces"], res2["surfaces"])

        # Input surface order doesn't alter classification.
        res3 = tbd.process(list(reversed(s)), [], dict(option="poor (BETBG)"))
        self.assertEqual(types(res1), types(res3))

        for id, surface in res1["surfaces"].items():
            hl = res3["surfaces"][id]["heatloss"]
            self.assertAlmostEqual(surface["heatloss"], hl, places=3)

        self.assertTrue(o.status() < WRN)

    def test02_fatal(self):
        o = tbd.oslg
        self.assertEqual(o.reset(DBG), DBG)
        self.assertEqual(o.clean(), DBG)

        empty = dict(surfaces=dict(), edges=[])

        res = tbd.process(room(), [], dict(option="foo"))
        self.assertEqual(res, empty)
        self.assertTrue(o.is_fatal())
        self.assertEqual(o.clean(), DBG)

        bad = dict(id="bad", type="wall", deratable=True, layers=[dict(r=2.0)],
                   points=[(0, 0, 3), (0, 0, 0), (4, 0, 0), (4, 1, 3)])
        res = tbd.process([bad], [], dict(option="regular (BETBG)"))
        self.assertEqual(res, empty)
        self.assertTrue(o.is_fatal())
        self.assertTrue(o.logs()[-1]["message"].startswith("'bad': Non-planar"))
        self.assertEqual(o.clean(), DBG)

        # A single degenerate polygon voids the whole derating.
        for pts in ([(4, 0, 3), (4, 0, 0)],
                    [(4, 0, 3), (4, 0, 0), (4, 0, 1.5)]):
            s = room()
            s[1]["points"] = pts
            self.assertEqual(s[1]["id"], "east")

            res = tbd.process(s, [], dict(option="regular (BETBG)"))
            self.assertEqual(res, empty)
            self.assertTrue(o.is_fatal())
            self.assertTrue(o.logs()[-1]["message"].startswith("'east': "))
            self.assertEqual(o.clean(), DBG)

        s = room(subs=[dict(id="win", type="window", points=window[:2])])
        res = tbd.process(s, [], dict(option="regular (BETBG)"))
        self.assertEqual(res, empty)
        self.assertTrue(o.logs()[-1]["message"].startswith("'win': 2 vertices"))
        self.assertEqual(o.clean(), DBG)

        shade = dict(id="fin", points=[(0, 0, 3), (0, -1, 3)])
        res = tbd.process(room(), [shade], dict(option="regular (BETBG)"))
        self.assertEqual(res, empty)
        self.assertTrue(o.is_fatal())
        self.assertEqual(o.clean(), DBG)

        res = tbd.process(room(), [], dict(option="regular (BETBG)", parapet="yes"))
        self.assertEqual(res, empty)
        self.assertTrue(o.is_error())
        self.assertEqual(o.clean(), DBG)

        res = tbd.process([], [], dict(option="regular (BETBG)"))
        self.assertEqual(res, empty)
        self.assertTrue(o.is_error())
        self.assertEqual(o.clean(), DBG)

    def test03_roofs(self):
        o = tbd.oslg
        self.assertEqual(o.reset(DBG), DBG)
        self.assertEqual(o.clean(), DBG)

        res = tbd.process(room(), [], dict(option="regular (BETBG)", parapet=False))
        self.assertEqual(types(res)["roofconvex"], 4)
        self.assertFalse("parapetconvex" in types(res))

        # Per-surface override.
        io  = dict(surfaces=[dict(id="north", parapet=False)])
        res = tbd.process(room(), [], dict(option="regular (BETBG)", io=io))
        self.assertEqual(types(res)["roofconvex"], 1)
        self.assertEqual(types(res)["parapetconvex"], 3)
        self.assertTrue(o.status() < WRN)

    def test04_customization(self):
        o = tbd.oslg
        self.assertEqual(o.reset(DBG), DBG)
        self.assertEqual(o.clean(), DBG)

        # User-set edge type.
        io   = dict(edges=[dict(type="joint", surfaces=["south", "east"])])
        res  = tbd.process(room(), [], dict(option="regular (BETBG)", io=io))
        t    = types(res)
        self.assertEqual(t["joint"], 1)
        self.assertEqual(t["cornerconvex"], 3)

        joint = [e for e in res["edges"] if e["type"] == "joint"][0]
        self.assertAlmostEqual(joint["psi"], 0.200, places=3)
        self.assertEqual(sorted(joint["surfaces"]), ["east", "south"])

        # Story-wide PSI set, then a (more efficient) surface PSI set.
        io  = dict(stories=[dict(id="Level 1", psi="poor (BETBG)")],
                   surfaces=[dict(id="north", psi="efficient (BETBG)")])
        res = tbd.process(room(), [], dict(option="regular (BETBG)", io=io))

        for edge in res["edges"]:
            if "north" in edge["surfaces"]:
                self.assertEqual(edge["set"], "efficient (BETBG)")
            else:
                self.assertEqual(edge["set"], "poor (BETBG)")

        # Point thermal bridges.
        io  = dict(surfaces=[dict(id="south", khis=[dict(id="regular (BETBG)", count=4)])])
        res = tbd.process(room(), [], dict(option="regular (BETBG)", io=io))
        hl  = 2.0 + 1.35 + 0.45 * 4 * 2 / 7 + 0.35 * 6 + 0.5 * 4
        pts = res["surfaces"]["south"]["pts"]
        self.assertAlmostEqual(res["surfaces"]["south"]["heatloss"], hl, places=3)
        self.assertEqual(pts["regular (BETBG)"]["n"], 4)
        self.assertTrue(o.status() < WRN)

        # Invalid KHI counts are logged & ignored.
        io  = dict(surfaces=[dict(id="south", khis=[dict(id="regular (BETBG)", count="4")])])
        res = tbd.process(room(), [], dict(option="regular (BETBG)", io=io))
        hl  = 2.0 + 1.35 + 0.45 * 4 * 2 / 7 + 0.35 * 6
        self.assertAlmostEqual(res["surfaces"]["south"]["heatloss"], hl, places=3)
        self.assertEqual(res["surfaces"]["south"]["pts"], dict())
        self.assertTrue(o.is_error())
        msgs = [l["message"] for l in o.logs()]
        self.assertTrue(any(m.startswith("'south KHI count' str?") for m in msgs))
        self.assertEqual(o.clean(), DBG)

    def test05_subsurfaces(self):
        o = tbd.oslg
        self.assertEqual(o.reset(DBG), DBG)
        self.assertEqual(o.clean(), DBG)

        w1   = [(1, 0, 2), (1, 0, 1), (1.975, 0, 1), (1.975, 0, 2)]
        w2   = [(2.025, 0, 2), (2.025, 0, 1), (3, 0, 1), (3, 0, 2)]
        subs = [dict(id="w1", points=w1), dict(id="w2", points=w2)]

        res = tbd.process(room(subs), [], dict(option="regular (BETBG)"))
        self.assertEqual(len(res["edges"]), 20)
        self.assertEqual(types(res)["jamb"], 4)
        self.assertFalse("transition" in types(res))

        res = tbd.process(room(subs), [], dict(option="regular (BETBG)", sub_tol=0.1))
        self.assertEqual(types(res)["jamb"], 2)
        self.assertEqual(types(res)["transition"], 2)

        # Multipliers.
        subs = [dict(id="win", points=window, mult=2)]
        res  = tbd.process(room(subs), [], dict(option="regular (BETBG)"))

        for edge in res["edges"]:
            if edge["type"] in ("head", "sill", "jamb"):
                self.assertEqual(edge["mult"], 2)
            else:
                self.assertEqual(edge["mult"], 1)

        hl = 2.0 + 1.35 + 0.45 * 4 * 2 / 7 + 0.35 * 6 * 2
        self.assertAlmostEqual(res["surfaces"]["south"]["heatloss"], hl, places=3)
        self.assertTrue(o.status() < WRN)

    def test06_uprate(self):
        o = tbd.oslg
        self.assertEqual(o.reset(DBG), DBG)
        self.assertEqual(o.clean(), DBG)

        argh = dict(option        = "regular (BETBG)",
                    uprate_walls  = True,
                    wall_ut       = 0.5,
                    wall_option   = "all wall constructions")

        res = tbd.process(room(), [], argh)
        self.assertTrue(o.status() < WRN)

        hloss = 2.0 + 1.35 + 0.45 * 4 * 2 / 7
        hloss = 4 * hloss + 0.35 * 6
        new_r = 1 / (1 / 1.7 - hloss / 46)
        self.assertAlmostEqual(argh["wall_uo"], 1 / (new_r + 0.3), places=3)
        self.assertFalse("roof_uo" in argh)

        south = res["surfaces"]["south"]
        hl    = 2.0 + 1.35 + 0.45 * 4 * 2 / 7 + 0.35 * 6
        self.assertAlmostEqual(south["r"], 1 / (1 / new_r + hl / 10), places=3)

        # Deratable surfaces lacking insulation can't be derated.
        s = room()
        s[-1]["deratable"] = True
        res = tbd.process(s, [], dict(option="regular (BETBG)"))
        self.assertFalse("floor" in res["surfaces"])
        self.assertEqual(types(res)["rimjoist"], 4)
        self.assertTrue(o.is_error())
        msgs = [l["message"] for l in o.logs()]
        self.assertTrue(any(m.startswith("Can't derate 'floor'") for m in msgs))
        self.assertEqual(o.clean(), DBG)

    def test07_bounds(self):
        o = tbd.oslg
        self.assertEqual(o.reset(DBG), DBG)
        self.assertEqual(o.clean(), DBG)

        # A tiny net area: the derated layer hits its thickness & conductivity
        # bounds, and the balance of the heat loss is left unassigned.
        s = room()
        s[0]["layers"] = [dict(k=0.04, d=0.08)]
        s[0]["net"   ] = 0.001
        self.assertEqual(s[0]["id"], "south")

        res = tbd.process(s, [], dict(option="regular (BETBG)"))
        self.assertEqual(o.status(), WRN)
        msgs = [l["message"] for l in o.logs()]
        self.assertTrue(any(m.startswith("Won't assign") for m in msgs))

        south = res["surfaces"]["south"]
        hl    = 2.0 + 2 * 0.45 * 3 * 0.5 + 0.45 * 4 * 2 / 7 + 0.35 * 6
        self.assertAlmostEqual(south["heatloss"], hl, places=3)
        self.assertAlmostEqual(south["layer"]["d"], 0.003, places=4)
        self.assertAlmostEqual(south["layer"]["k"], 3.0, places=3)
        self.assertAlmostEqual(south["r"], 0.001, places=4)
        self.assertTrue(south["r_heatloss"] > 0)
        self.assertAlmostEqual(south["r_heatloss"], (0.5 + hl / 0.001 - 1000) * 0.001, places=3)
        self.assertAlmostEqual(south["u_realized"], 1 / 0.301, places=3)
        self.assertAlmostEqual(south["u_requested"], 1 / (0.3 + 1 / (0.5 + hl / 0.001)), places=3)
        self.assertTrue(south["u_realized"] < south["u_requested"])

        # Unbounded surfaces: requested & realized U match.
        east = res["surfaces"]["east"]
        self.assertAlmostEqual(east["r_heatloss"], 0, places=3)
        self.assertAlmostEqual(east["u_requested"], east["u_realized"], places=3)
        self.assertEqual(o.clean(), DBG)

    def test08_allocation(self):
        o = tbd.oslg
        self.assertEqual(o.reset(DBG), DBG)
        self.assertEqual(o.clean(), DBG)

        # Corner window: the shared corner edge goes to the neighbour (east),
        # not to the window's parent (south).
        corner = [(3, 0, 2), (3, 0, 1), (4, 0, 1), (4, 0, 2)]
        res    = tbd.process(room([dict(id="win", points=corner)]), [],
                             dict(option="regular (BETBG)"))
        self.assertTrue(o.status() < WRN)

        edges = [e for e in res["edges"] if "win" in e["surfaces"] and "east" in e["surfaces"]]
        self.assertEqual(len(edges), 1)

        edge = edges[0]
        self.assertTrue("south" in edge["surfaces"])
        self.assertAlmostEqual(edge["length"], 1, places=3)
        self.assertFalse(edge["id"] in res["surfaces"]["south"]["edges"])

        b = res["surfaces"]["east"]["edges"][edge["id"]]
        self.assertAlmostEqual(b["ratio"], 1, places=3)
        self.assertAlmostEqual(b["psi"], edge["psi"], places=3)
        self.assertAlmostEqual(b["length"], 1, places=3)

        # Two abutting windows: their shared jamb is reported, yet skipped.
        w1   = [(1, 0, 2), (1, 0, 1), (2, 0, 1), (2, 0, 2)]
        w2   = [(2, 0, 2), (2, 0, 1), (3, 0, 1), (3, 0, 2)]
        subs = [dict(id="w1", points=w1), dict(id="w2", points=w2)]
        res  = tbd.process(room(subs), [], dict(option="regular (BETBG)"))
        self.assertTrue(o.status() < WRN)

        edges = [e for e in res["edges"] if "w1" in e["surfaces"] and "w2" in e["surfaces"]]
        self.assertEqual(len(edges), 1)

        edge = edges[0]
        self.assertEqual(edge["type"], "jamb")
        self.assertAlmostEqual(edge["length"], 1, places=3)

        for surface in res["surfaces"].values():
            self.assertFalse(edge["id"] in surface["edges"])

        msg = "Edge %d links 2 subsurfaces: skipped" % edge["id"]
        self.assertTrue(any(l["message"].startswith(msg) for l in o.logs()))

        south = res["surfaces"]["south"]
        hl    = 2.0 + 2 * 0.45 * 3 * 0.5 + 0.45 * 4 * 2 / 7 + 0.35 * 6
        self.assertAlmostEqual(south["heatloss"], hl, places=3)
        self.assertEqual(o.clean(), DBG)


if __name__ == "__main__":
    unittest.main()
